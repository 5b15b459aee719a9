"""PlantBid ödeme servisi: PortOne V2 ödeme eşleştirme ve iptal."""
