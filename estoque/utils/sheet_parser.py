import csv
import io
import re
import unicodedata
from dataclasses import dataclass, asdict
from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Any, Dict, List, Optional

import pandas as pd

from estoque.errors import UploadError
from estoque.services.code_allocator import DEFAULT_WIDTH, format_code

EXCEL_EXTENSIONS = ('.xlsx', '.xlsm', '.xls')
TEXT_EXTENSIONS = ('.csv', '.txt')

# Recognized header names per product field, compared after normalize_header
FIELD_ALIASES: Dict[str, tuple] = {
    'code': ('codigo', 'cod', 'code', 'codigo do produto', 'product code'),
    'name': ('nome', 'produto', 'nome do produto', 'descricao', 'name', 'product', 'product name'),
    'supplier': ('fornecedor', 'marca', 'supplier', 'vendor'),
    'sku': ('sku', 'referencia', 'ref'),
    'color': ('cor', 'color', 'colour'),
    'size': ('tamanho', 'tam', 'size'),
    'stock': ('estoque', 'quantidade', 'qtd', 'qtde', 'qt', 'stock', 'quantity', 'qty'),
    'cost_price': ('custo', 'preco de custo', 'preco custo', 'valor de custo', 'cost', 'cost price'),
    'sale_price': ('venda', 'preco de venda', 'preco venda', 'preco', 'valor de venda', 'price', 'sale price'),
    'markup': ('variacao', 'markup', 'margem', 'margem de lucro', 'margin'),
    'barcode': ('codigo de barras', 'cod barras', 'cod de barras', 'ean', 'gtin', 'barcode'),
    'year': ('ano', 'year'),
}

TEXT_FIELDS = ('code', 'name', 'supplier', 'sku', 'color', 'size', 'barcode')

_CURRENCY = re.compile(r'(R\$|US\$|\$|€|£)')
_SEPARATORS = re.compile(r'[\s_\-.]+')
_TWO_PLACES = Decimal('0.01')
# Largest values the stock/year (INTEGER) and price (NUMERIC(12, 2)) columns hold
MAX_INTEGER = 2 ** 31 - 1
MAX_PRICE = Decimal('9999999999.99')


@dataclass
class ProductRecord:
    """One spreadsheet row after field mapping and normalization."""

    code: str = ''
    name: str = ''
    supplier: str = ''
    sku: str = ''
    color: str = ''
    size: str = ''
    stock: int = 0
    cost_price: Decimal = Decimal('0.00')
    sale_price: Decimal = Decimal('0.00')
    markup: str = ''
    barcode: str = ''
    year: Optional[int] = None

    def as_columns(self) -> Dict[str, Any]:
        return asdict(self)


def normalize_header(name: Any) -> str:
    """Casefold, strip accents and collapse separators: 'Preço_de-Custo' -> 'preco de custo'."""
    text = unicodedata.normalize('NFKD', str(name or ''))
    text = ''.join(ch for ch in text if not unicodedata.combining(ch))
    return _SEPARATORS.sub(' ', text.casefold()).strip()


_ALIAS_LOOKUP = {
    normalize_header(alias): field
    for field, aliases in FIELD_ALIASES.items()
    for alias in aliases
}


def _clean_number(value: Any) -> str:
    text = _CURRENCY.sub('', str(value))
    text = text.replace('\xa0', '').replace(' ', '').replace('%', '')
    if ',' in text:
        # pt-BR: dots group thousands, the comma is the decimal separator
        return text.replace('.', '').replace(',', '.')
    if text.count('.') > 1:
        return text.replace('.', '')
    return text


def try_parse_decimal(value: Any) -> Optional[Decimal]:
    """Locale-tolerant money parsing: 'R$ 1.234,56' -> Decimal('1234.56'), None on failure."""
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = value if isinstance(value, Decimal) else Decimal(_clean_number(value))
        if not parsed.is_finite() or abs(parsed) > MAX_PRICE:
            return None
        return parsed.quantize(_TWO_PLACES)
    except (InvalidOperation, ValueError):
        return None


def parse_decimal(value: Any) -> Decimal:
    parsed = try_parse_decimal(value)
    return parsed if parsed is not None else Decimal('0.00')


def parse_integer(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = Decimal(_clean_number(value))
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite() or abs(parsed) > MAX_INTEGER:
        return None
    return int(parsed.to_integral_value(rounding=ROUND_DOWN))


def parse_int(value: Any) -> int:
    parsed = parse_integer(value)
    return parsed if parsed is not None else 0


def parse_year(value: Any) -> Optional[int]:
    return parse_integer(value)


def normalize_code(value: Any, width: int = DEFAULT_WIDTH) -> str:
    """
    Canonical form of a business code.

    Numeric codes are zero-padded so '7', '0007' and the spreadsheet float
    '7.0' all address the same product. Anything else is kept verbatim.
    """
    text = str(value if value is not None else '').strip()
    if re.fullmatch(r'\d+(\.0+)?', text):
        return format_code(int(text.split('.')[0]), width)
    return text


def compute_markup(cost: Decimal, sale: Decimal) -> str:
    if cost <= 0:
        return ''
    return f"{(sale - cost) / cost * 100:.2f}%"


def detect_column_mapping(headers: List[str]) -> Dict[str, str]:
    """
    Map our field names to the spreadsheet headers that carry them.

    The first header matching a field wins; unrecognized headers are ignored.
    """
    mapping: Dict[str, str] = {}
    for header in headers:
        field = _ALIAS_LOOKUP.get(normalize_header(header))
        if field and field not in mapping:
            mapping[field] = header
    return mapping


def map_row(row: Dict[str, Any], column_mapping: Optional[Dict[str, str]] = None,
            width: int = DEFAULT_WIDTH) -> ProductRecord:
    """Build a ProductRecord from one raw row; missing columns take defaults."""
    if column_mapping is None:
        column_mapping = detect_column_mapping(list(row.keys()))

    def cell(field: str) -> str:
        header = column_mapping.get(field)
        if header is None:
            return ''
        value = row.get(header)
        return '' if value is None else str(value).strip()

    record = ProductRecord(**{field: cell(field) for field in TEXT_FIELDS})
    record.code = normalize_code(record.code, width)
    record.stock = parse_int(cell('stock'))
    record.cost_price = parse_decimal(cell('cost_price'))
    record.sale_price = parse_decimal(cell('sale_price'))
    record.year = parse_year(cell('year'))
    record.markup = cell('markup') or compute_markup(record.cost_price, record.sale_price)
    return record


def _read_excel(content: bytes) -> List[Dict[str, str]]:
    try:
        df = pd.read_excel(io.BytesIO(content), sheet_name=0, dtype=str)
    except Exception as e:
        raise UploadError(f"Could not read spreadsheet: {e}") from e
    df = df.fillna('')
    df.columns = [str(c).strip() for c in df.columns]
    return df.to_dict(orient='records')


def _read_csv(content: bytes) -> List[Dict[str, str]]:
    try:
        text_content = content.decode('utf-8-sig')
    except UnicodeDecodeError:
        text_content = content.decode('latin-1')

    # Normalize line endings (handle Windows \r\n)
    text_content = text_content.replace('\r\n', '\n').replace('\r', '\n')

    first_line = text_content.split('\n', 1)[0]
    delimiter = max((';', ',', '\t'), key=first_line.count)
    if not first_line.count(delimiter):
        delimiter = ','

    reader = csv.DictReader(io.StringIO(text_content), delimiter=delimiter)
    if not reader.fieldnames:
        raise UploadError("File has no header row")
    reader.fieldnames = [h.strip() for h in reader.fieldnames]
    return [
        {k: (v or '').strip() for k, v in row.items() if k is not None}
        for row in reader
    ]


def read_rows(content: bytes, filename: str) -> List[Dict[str, str]]:
    """
    Parse the first sheet of an uploaded file into header -> cell mappings.

    Every cell is text, blank cells are empty strings, and fully blank rows
    are dropped.
    """
    if not content:
        raise UploadError("File is empty")

    lowered = (filename or '').lower()
    if lowered.endswith(EXCEL_EXTENSIONS):
        rows = _read_excel(content)
    elif lowered.endswith(TEXT_EXTENSIONS):
        rows = _read_csv(content)
    else:
        raise UploadError("File must be a spreadsheet (.xlsx, .xls) or a CSV file")

    return [
        {str(k): str(v).strip() for k, v in row.items()}
        for row in rows
        if any(str(v).strip() for v in row.values())
    ]
