"""Document parser for supplier electronic invoices (FatturaPA XML).

Exposes:
- DocumentParser.parse(data, source_file) -> Invoice
- parse_invoice(data, source_file) -> Invoice

The parser is pure: it reads bytes and returns an Invoice, or raises
ParseError when the document lacks the structure every invoice must have
(issuer, document number and date, line container). An individual line
that is not a usable goods line is kept aside as a SkippedLine and never
fails the whole document.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple
from xml.etree.ElementTree import Element

from defusedxml import DefusedXmlException
from defusedxml.ElementTree import fromstring, ParseError as XMLParseError
from pydantic import ValidationError

from core.errors import ParseError
from core.observability.logging import get_logger
from models.invoice import Invoice, InvoiceLine, SkippedLine

logger = get_logger(__name__)


# =============================================================================
# Document Paths
# =============================================================================

ROOT_TAG = "FatturaElettronica"
HEADER_TAG = "FatturaElettronicaHeader"
BODY_TAG = "FatturaElettronicaBody"

ISSUER_REGISTRY_PATH = "CedentePrestatore/DatiAnagrafici"
DOCUMENT_DATA_PATH = "DatiGenerali/DatiGeneraliDocumento"
LINES_CONTAINER_PATH = "DatiBeniServizi"
LINE_TAG = "DettaglioLinee"


# =============================================================================
# XML Utilities
# =============================================================================

def _local_name(tag) -> str:
    """Strip a '{namespace}' prefix from an element tag."""
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _strip_namespaces(root: Element) -> None:
    for element in root.iter():
        element.tag = _local_name(element.tag)


def _text(element: Optional[Element], path: str) -> Optional[str]:
    """Stripped text at path, or None when missing or blank."""
    if element is None:
        return None
    found = element.find(path)
    if found is None or found.text is None:
        return None
    value = found.text.strip()
    return value or None


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        location = ".".join(str(part) for part in err.get("loc", ()))
        parts.append(f"{location}: {err.get('msg')}" if location else err.get("msg", ""))
    return "; ".join(parts)


# =============================================================================
# Parser
# =============================================================================

class DocumentParser:
    """Turns raw electronic invoice bytes into an Invoice.

    Example:
        parser = DocumentParser()
        invoice = parser.parse(path.read_bytes(), source_file=path.name)
        for line in invoice.lines:
            print(line.description, line.quantity, line.supplier_code)
    """

    def parse(self, data: bytes, source_file: str = "<memory>") -> Invoice:
        """Parse an invoice document.

        Args:
            data: Raw document bytes
            source_file: File name, carried into the Invoice for audit

        Returns:
            Invoice with its usable lines and any skipped lines

        Raises:
            ParseError: If the document is not a well-formed invoice
        """
        root = self._load_root(data, source_file)
        invoice_node = self._find_invoice_node(root, source_file)

        header = invoice_node.find(HEADER_TAG)
        if header is None:
            raise ParseError(f"Missing {HEADER_TAG}", source_file)

        bodies = invoice_node.findall(BODY_TAG)
        if not bodies:
            raise ParseError(f"Missing {BODY_TAG}", source_file)
        if len(bodies) > 1:
            logger.warning(
                f"Document contains {len(bodies)} invoice bodies; only the first is read",
                extra_fields={"source_file": source_file},
            )
        body = bodies[0]

        supplier_name, vat_number = self._parse_issuer(header, source_file)

        document_data = body.find(DOCUMENT_DATA_PATH)
        if document_data is None:
            raise ParseError(f"Missing {DOCUMENT_DATA_PATH}", source_file)

        invoice_number = _text(document_data, "Numero")
        if not invoice_number:
            raise ParseError("Missing invoice number (Numero)", source_file)

        raw_date = _text(document_data, "Data")
        if not raw_date:
            raise ParseError("Missing invoice date (Data)", source_file)
        try:
            invoice_date = datetime.strptime(raw_date, "%Y-%m-%d").date()
        except ValueError:
            raise ParseError(f"Invalid invoice date: {raw_date!r}", source_file)

        lines_container = body.find(LINES_CONTAINER_PATH)
        if lines_container is None:
            raise ParseError(f"Missing line container ({LINES_CONTAINER_PATH})", source_file)

        lines, skipped = self._parse_lines(lines_container)

        try:
            invoice = Invoice(
                supplier_name=supplier_name,
                supplier_vat_number=vat_number,
                invoice_number=invoice_number,
                invoice_date=invoice_date,
                document_type=_text(document_data, "TipoDocumento"),
                document_total=self._parse_document_total(document_data),
                source_file=source_file,
                lines=lines,
                skipped_lines=skipped,
            )
        except ValidationError as e:
            raise ParseError(f"Invalid invoice: {_format_validation_error(e)}", source_file)

        logger.info(
            f"Parsed invoice {invoice.invoice_number} from {invoice.supplier_name}",
            extra_fields={"lines": len(lines), "skipped_lines": len(skipped)},
        )
        return invoice

    # =========================================================================
    # Document Structure
    # =========================================================================

    @staticmethod
    def _load_root(data: bytes, source_file: str) -> Element:
        if not data or not data.strip():
            raise ParseError("Empty document", source_file)
        try:
            root = fromstring(data)
        except XMLParseError as e:
            raise ParseError(f"Malformed XML: {e}", source_file)
        except DefusedXmlException as e:
            raise ParseError(f"Unsafe XML rejected: {e}", source_file)
        _strip_namespaces(root)
        return root

    @staticmethod
    def _find_invoice_node(root: Element, source_file: str) -> Element:
        """Locate the invoice element, tolerating envelopes around it."""
        if root.tag == ROOT_TAG:
            return root
        nested = root.find(f".//{ROOT_TAG}")
        if nested is not None:
            return nested
        if root.find(HEADER_TAG) is not None:
            return root
        raise ParseError(f"Not an electronic invoice (root element <{root.tag}>)", source_file)

    @staticmethod
    def _parse_issuer(header: Element, source_file: str) -> Tuple[str, Optional[str]]:
        """Supplier name from the issuer registry, falling back to a person's name."""
        registry = header.find(ISSUER_REGISTRY_PATH)
        if registry is None:
            raise ParseError(f"Missing issuer ({ISSUER_REGISTRY_PATH})", source_file)

        company = _text(registry, "Anagrafica/Denominazione")
        if company:
            name = company
        else:
            person = [
                part for part in (_text(registry, "Anagrafica/Nome"), _text(registry, "Anagrafica/Cognome"))
                if part
            ]
            name = " ".join(person)

        if not name:
            raise ParseError("Issuer has neither a company name nor a person name", source_file)

        return name, _text(registry, "IdFiscaleIVA/IdCodice")

    @staticmethod
    def _parse_document_total(document_data: Element) -> Optional[Decimal]:
        """Declared document total; informational, so a bad value is dropped."""
        raw = _text(document_data, "ImportoTotaleDocumento")
        if raw is None:
            return None
        try:
            return Decimal(raw)
        except InvalidOperation:
            logger.warning(f"Ignoring unreadable document total: {raw!r}")
            return None

    # =========================================================================
    # Lines
    # =========================================================================

    def _parse_lines(self, container: Element) -> Tuple[List[InvoiceLine], List[SkippedLine]]:
        lines: List[InvoiceLine] = []
        skipped: List[SkippedLine] = []
        for node in container.findall(LINE_TAG):
            line, skip = self._parse_line(node)
            if line is not None:
                lines.append(line)
            else:
                skipped.append(skip)
        return lines, skipped

    @staticmethod
    def _parse_line(node: Element) -> Tuple[Optional[InvoiceLine], Optional[SkippedLine]]:
        raw_number = _text(node, "NumeroLinea")
        try:
            line_number = int(raw_number) if raw_number else None
        except ValueError:
            line_number = None

        description = _text(node, "Descrizione") or ""
        if not description:
            return None, SkippedLine(line_number=line_number, reason="missing description")

        quantity = _text(node, "Quantita")
        if quantity is None:
            return None, SkippedLine(
                line_number=line_number, description=description, reason="missing quantity"
            )

        values = {
            "line_number": line_number,
            "description": description,
            "quantity": quantity,
            "unit_of_measure": _text(node, "UnitaMisura"),
            "supplier_code": _text(node, "CodiceArticolo/CodiceValore"),
        }
        unit_price = _text(node, "PrezzoUnitario")
        if unit_price is not None:
            values["unit_price"] = unit_price
        line_total = _text(node, "PrezzoTotale")
        if line_total is not None:
            values["line_total"] = line_total

        try:
            return InvoiceLine(**values), None
        except ValidationError as e:
            return None, SkippedLine(
                line_number=line_number,
                description=description,
                reason=_format_validation_error(e),
            )


_default_parser = DocumentParser()


def parse_invoice(data: bytes, source_file: str = "<memory>") -> Invoice:
    """Parse invoice bytes with a default DocumentParser."""
    return _default_parser.parse(data, source_file)
