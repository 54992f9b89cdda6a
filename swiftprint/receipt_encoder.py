# Receipt Command Encoder for SwiftPOS Print Agent
# Renders a priced transaction into an ESC/POS byte stream

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .config import StoreConfig
from .errors import ValidationError

logger = logging.getLogger(__name__)

ROUNDING_TOLERANCE = Decimal('0.01')
ZERO = Decimal('0')
CASH = 'CASH'

# Column where the line total starts on the "qty x price" row (58mm paper)
QTY_COLUMN = 20

LEFT = 'left'
CENTER = 'center'
RIGHT = 'right'


class Commands:
    """ESC/POS command constants; nothing else in the agent builds control codes"""

    ESC = b'\x1b'
    GS = b'\x1d'
    LF = b'\x0a'

    INIT = ESC + b'@'
    EMPHASIS_ON = ESC + b'!\x08'
    EMPHASIS_OFF = ESC + b'!\x00'
    ALIGN_LEFT = ESC + b'a\x00'
    ALIGN_CENTER = ESC + b'a\x01'
    ALIGN_RIGHT = ESC + b'a\x02'
    CUT = GS + b'V\x41\x03'

    # Blank lines needed to move the last printed line past the cutter
    FEED_LINES = 3

    ALIGN = {LEFT: ALIGN_LEFT, CENTER: ALIGN_CENTER, RIGHT: ALIGN_RIGHT}


@dataclass(frozen=True)
class LineItem:
    """A single priced line on the receipt"""
    name: str
    quantity: Decimal
    unit_price: Decimal
    total: Decimal
    discount: Decimal = ZERO


@dataclass(frozen=True)
class ReceiptDocument:
    """Everything printed on one receipt, already priced"""
    store_name: str
    store_address: str = ''
    store_phone: str = ''
    items: Tuple[LineItem, ...] = ()
    subtotal: Decimal = ZERO
    tax: Decimal = ZERO
    discount: Decimal = ZERO
    total: Decimal = ZERO
    payment_method: str = ''
    amount_paid: Optional[Decimal] = None
    change: Optional[Decimal] = None
    footer: str = ''

    @property
    def is_cash(self) -> bool:
        return self.payment_method.upper() == CASH


def _pick(mapping: Dict[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = mapping.get(key)
        if value is not None:
            return value
    return None


def _to_decimal(value: Any, label: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a number, got {value!r}")
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{label} must be a number, got {value!r}")
    if not result.is_finite():
        raise ValidationError(f"{label} must be finite, got {value!r}")
    return result


def _amount(mapping: Dict[str, Any], keys: Tuple[str, ...], label: str,
            default: Optional[Decimal] = ZERO) -> Optional[Decimal]:
    value = _pick(mapping, keys)
    if value is None or value == '':
        return default
    return _to_decimal(value, label)


def _build_item(index: int, raw: Any) -> LineItem:
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{index}] must be an object")
    name = str(raw.get('name') or '').strip()
    if not name:
        raise ValidationError(f"items[{index}] has no name")
    label = f"items[{index}]"
    quantity = _amount(raw, ('qty', 'quantity'), f"{label}.qty", default=None)
    unit_price = _amount(raw, ('unitPrice', 'price'), f"{label}.unitPrice", default=None)
    if quantity is None or unit_price is None:
        raise ValidationError(f"{label} needs qty and unitPrice")
    discount = _amount(raw, ('discount',), f"{label}.discount")
    total = _amount(raw, ('totalPrice', 'total'), f"{label}.totalPrice", default=None)
    if total is None:
        total = quantity * unit_price - discount
    return LineItem(name=name, quantity=quantity, unit_price=unit_price,
                    total=total, discount=discount)


def build_document(transaction: Dict[str, Any], store: Optional[StoreConfig] = None) -> ReceiptDocument:
    """
    Build a ReceiptDocument from a priced transaction dict.

    Store fields present on the transaction override the configured store.
    A missing subtotal defaults to the sum of the line totals; a missing
    change on a cash payment defaults to tendered minus total.
    """
    if not isinstance(transaction, dict):
        raise ValidationError("Transaction must be an object")
    store = store or StoreConfig()

    raw_items = transaction.get('items') or []
    if not isinstance(raw_items, (list, tuple)):
        raise ValidationError("items must be a list")
    items = tuple(_build_item(i, raw) for i, raw in enumerate(raw_items))

    line_sum = sum((item.total for item in items), ZERO)
    subtotal = _amount(transaction, ('subtotal',), 'subtotal', default=line_sum)
    tax = _amount(transaction, ('taxAmount', 'tax'), 'taxAmount')
    discount = _amount(transaction, ('discountAmount',), 'discountAmount')
    total = _amount(transaction, ('totalAmount', 'total'), 'totalAmount', default=None)
    if total is None:
        total = subtotal - discount + tax

    payment_method = str(transaction.get('paymentMethod') or '').strip().upper()
    amount_paid = _amount(transaction, ('paidAmount', 'amountPaid'), 'paidAmount', default=None)
    change = _amount(transaction, ('changeAmount', 'change'), 'changeAmount', default=None)
    if change is None and amount_paid is not None:
        change = amount_paid - total

    return ReceiptDocument(
        store_name=str(transaction.get('storeName') or store.name),
        store_address=str(transaction.get('storeAddress') or store.address),
        store_phone=str(transaction.get('storePhone') or store.phone),
        items=items,
        subtotal=subtotal,
        tax=tax,
        discount=discount,
        total=total,
        payment_method=payment_method,
        amount_paid=amount_paid,
        change=change,
        footer=str(transaction.get('footer') or store.footer),
    )


def _close(a: Decimal, b: Decimal) -> bool:
    return abs(a - b) <= ROUNDING_TOLERANCE


def validate_document(document: ReceiptDocument) -> None:
    """Raise ValidationError if the document's numbers do not add up"""
    for index, item in enumerate(document.items):
        label = f"Item {index} ({item.name})"
        if item.quantity < 0:
            raise ValidationError(f"{label}: negative quantity {item.quantity}")
        if item.unit_price < 0:
            raise ValidationError(f"{label}: negative unit price {item.unit_price}")
        if item.discount < 0:
            raise ValidationError(f"{label}: negative discount {item.discount}")
        expected = item.quantity * item.unit_price - item.discount
        if not _close(expected, item.total):
            raise ValidationError(
                f"{label}: total {item.total} != {item.quantity} x {item.unit_price} - {item.discount}"
            )

    line_sum = sum((item.total for item in document.items), ZERO)
    if not _close(line_sum, document.subtotal):
        raise ValidationError(f"Subtotal {document.subtotal} != sum of line totals {line_sum}")
    if document.discount < 0:
        raise ValidationError(f"Negative discount amount {document.discount}")
    if document.tax < 0:
        raise ValidationError(f"Negative tax amount {document.tax}")
    expected_total = document.subtotal - document.discount + document.tax
    if not _close(expected_total, document.total):
        raise ValidationError(
            f"Total {document.total} != subtotal - discount + tax ({expected_total})"
        )
    if document.amount_paid is not None and document.amount_paid < 0:
        raise ValidationError(f"Negative paid amount {document.amount_paid}")
    if document.change is not None and document.change < 0:
        raise ValidationError(f"Negative change {document.change}")


def format_amount(value: Decimal) -> str:
    """Render an amount the same way everywhere: 20000, 1500.50"""
    if value == value.to_integral_value():
        return str(int(value))
    return f"{value.quantize(Decimal('0.01')):f}"


def _columns(left: str, right: str, width: int) -> str:
    pad = max(width - len(left) - len(right), 1)
    return left + ' ' * pad + right


def _layout(document: ReceiptDocument, width: int) -> List[Tuple[str, bool, str]]:
    """Receipt as (alignment, emphasis, text) rows in print order"""
    rows = []
    if document.store_name:
        rows.append((CENTER, True, document.store_name))
    if document.store_address:
        rows.append((CENTER, False, document.store_address))
    if document.store_phone:
        rows.append((CENTER, False, document.store_phone))
    rows.append((CENTER, False, '=' * width))

    for item in document.items:
        rows.append((LEFT, False, item.name))
        qty_price = f"{format_amount(item.quantity)} x {format_amount(item.unit_price)}"
        rows.append((LEFT, False, _columns(qty_price.ljust(QTY_COLUMN), format_amount(item.total), width)))
        if item.discount > 0:
            rows.append((LEFT, False, f"   (Potongan: -{format_amount(item.discount)})"))
    rows.append((LEFT, False, '-' * width))

    rows.append((RIGHT, False, f"Subtotal: {format_amount(document.subtotal)}"))
    if document.discount > 0:
        rows.append((RIGHT, False, f"Total Diskon: -{format_amount(document.discount)}"))
    if document.tax > 0:
        rows.append((RIGHT, False, f"Pajak: {format_amount(document.tax)}"))
    rows.append((RIGHT, True, f"Total: {format_amount(document.total)}"))

    if document.payment_method:
        rows.append((RIGHT, False, f"Pembayaran: {document.payment_method}"))
        if document.is_cash and document.amount_paid is not None:
            rows.append((RIGHT, False, f"Bayar: {format_amount(document.amount_paid)}"))
            rows.append((RIGHT, False, f"Kembali: {format_amount(document.change or ZERO)}"))

    rows.append((CENTER, False, '=' * width))
    if document.footer:
        rows.append((CENTER, False, document.footer))
    return rows


def render_text(document: ReceiptDocument, width: int = 32) -> List[str]:
    """Plain text lines of the receipt, without control codes"""
    return [text for _, _, text in _layout(document, width)]


def encode(document: ReceiptDocument, width: int = 32, encoding: str = 'cp437') -> bytes:
    """
    Encode a ReceiptDocument into an ESC/POS command stream.

    Deterministic and free of I/O. Alignment and emphasis are switched only
    when they change, and both are reset to the printer defaults before the
    feed and cut, so the next job starts from a known state.
    """
    validate_document(document)

    out = bytearray(Commands.INIT)
    align, emphasis = LEFT, False
    for row_align, row_emphasis, text in _layout(document, width):
        if row_align != align:
            out += Commands.ALIGN[row_align]
            align = row_align
        if row_emphasis != emphasis:
            out += Commands.EMPHASIS_ON if row_emphasis else Commands.EMPHASIS_OFF
            emphasis = row_emphasis
        out += text.encode(encoding, errors='replace') + Commands.LF

    out += Commands.EMPHASIS_OFF + Commands.ALIGN_LEFT
    out += Commands.LF * Commands.FEED_LINES
    out += Commands.CUT

    logger.debug(f"Encoded receipt: {len(document.items)} items, {len(out)} bytes")
    return bytes(out)
