"""
PortOne V2 ödeme kimliği normalizasyonu.

Kanonik format: "pay_" + tam 22 ASCII alfanümerik karakter (toplam 26).
Eski kayıtlarda UUID, bazılarında tüccar sipariş numarası tutuluyor; PortOne'a giden
her kimlik buradan geçer. normalize_payment_id asla hata fırlatmaz.
"""
import re
import secrets
import time

PAYMENT_ID_PREFIX = "pay_"
PAYMENT_ID_SUFFIX_LENGTH = 22

_CANONICAL_RE = re.compile(r"^pay_[A-Za-z0-9]{22}$")
_UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")
_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")


def is_canonical_payment_id(value: str | None) -> bool:
    return bool(value) and _CANONICAL_RE.fullmatch(value) is not None


def is_legacy_uuid(value: str | None) -> bool:
    return bool(value) and _UUID_RE.fullmatch(value) is not None


def looks_like_merchant_order_number(value: str | None) -> bool:
    """Kanonik id veya UUID değilse PortOne'a doğrudan sorulamaz; sipariş numarası gibi aranır."""
    if not value:
        return False
    return not is_canonical_payment_id(value) and not is_legacy_uuid(value)


def _alnum(value: str) -> str:
    return _NON_ALNUM_RE.sub("", value)


def _fit(suffix: str, filler: str = "0") -> str:
    """>22 ise baştan 11 + sondan 11, <22 ise sağdan doldur."""
    if len(suffix) > PAYMENT_ID_SUFFIX_LENGTH:
        half = PAYMENT_ID_SUFFIX_LENGTH // 2
        return suffix[:half] + suffix[-half:]
    return suffix.ljust(PAYMENT_ID_SUFFIX_LENGTH, filler)


def _force(suffix: str, filler: str) -> str:
    return suffix[:PAYMENT_ID_SUFFIX_LENGTH].ljust(PAYMENT_ID_SUFFIX_LENGTH, filler)


def generate_payment_id() -> str:
    """Zaman damgası (base36) + rastgele hex; yeni ödeme için kanonik id."""
    stamp = _to_base36(int(time.time() * 1000))
    suffix = _alnum(stamp + secrets.token_hex(12))
    return PAYMENT_ID_PREFIX + _force(suffix, "0")


def _to_base36(number: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while number:
        number, rem = divmod(number, 36)
        out = digits[rem] + out
    return out or "0"


def _uuid_to_suffix(value: str) -> str:
    # Baştaki 8 (zaman benzeri) + ortadan 6 + sondaki 8 (rastgele) = 22
    hexes = value.replace("-", "")
    suffix = hexes[:8] + hexes[8:14] + hexes[-8:]
    if len(suffix) != PAYMENT_ID_SUFFIX_LENGTH:
        suffix = _force(suffix, "f")
    return suffix


def normalize_payment_id(raw: str | None) -> str:
    if raw is None:
        return generate_payment_id()
    value = str(raw).strip()
    if not value:
        return generate_payment_id()
    if is_canonical_payment_id(value):
        return value

    if is_legacy_uuid(value):
        suffix = _uuid_to_suffix(value)
    elif value.startswith(PAYMENT_ID_PREFIX):
        suffix = _fit(_alnum(value[len(PAYMENT_ID_PREFIX):]))
    else:
        cleaned = _alnum(value)
        if not cleaned:
            return generate_payment_id()
        suffix = _fit(cleaned)

    candidate = PAYMENT_ID_PREFIX + suffix
    if not is_canonical_payment_id(candidate):
        candidate = PAYMENT_ID_PREFIX + _force(_alnum(suffix), "0")
    return candidate
