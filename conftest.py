"""Shared pytest fixtures: temporary inventory database and invoice XML."""

from typing import Dict, List, Optional
from xml.sax.saxutils import escape

import pytest

from storage import (
    CatalogStore,
    DocumentRegistry,
    LedgerStore,
    UnmatchedRegistry,
    init_inventory_db,
)


FPA_NAMESPACE = "http://ivaservizi.agenziaentrate.gov.it/docs/xsd/fatture/v1.2"


def _line_xml(number: int, line: Dict[str, str]) -> str:
    parts = [f"<NumeroLinea>{number}</NumeroLinea>"]
    if line.get("code"):
        parts.append(
            "<CodiceArticolo><CodiceTipo>FORN</CodiceTipo>"
            f"<CodiceValore>{escape(line['code'])}</CodiceValore></CodiceArticolo>"
        )
    if "description" in line:
        parts.append(f"<Descrizione>{escape(line['description'])}</Descrizione>")
    if "quantity" in line:
        parts.append(f"<Quantita>{line['quantity']}</Quantita>")
    if line.get("unit"):
        parts.append(f"<UnitaMisura>{escape(line['unit'])}</UnitaMisura>")
    if "unit_price" in line:
        parts.append(f"<PrezzoUnitario>{line['unit_price']}</PrezzoUnitario>")
    if "line_total" in line:
        parts.append(f"<PrezzoTotale>{line['line_total']}</PrezzoTotale>")
    return "<DettaglioLinee>" + "".join(parts) + "</DettaglioLinee>"


def build_invoice_xml(
    lines: List[Dict[str, str]],
    supplier_name: Optional[str] = "Molino Rossi SRL",
    invoice_number: str = "42",
    invoice_date: str = "2024-03-01",
    with_lines_container: bool = True,
    total: Optional[str] = None,
) -> bytes:
    """A FatturaPA document as the supplier's software would export it."""
    if supplier_name:
        anagrafica = f"<Denominazione>{escape(supplier_name)}</Denominazione>"
    else:
        anagrafica = "<Nome>Mario</Nome><Cognome>Bianchi</Cognome>"

    body_lines = ""
    if with_lines_container:
        body_lines = (
            "<DatiBeniServizi>"
            + "".join(_line_xml(i, line) for i, line in enumerate(lines, 1))
            + "<DatiRiepilogo><AliquotaIVA>10.00</AliquotaIVA></DatiRiepilogo>"
            + "</DatiBeniServizi>"
        )

    total_xml = f"<ImportoTotaleDocumento>{total}</ImportoTotaleDocumento>" if total else ""

    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<p:FatturaElettronica xmlns:p="{FPA_NAMESPACE}" versione="FPR12">'
        "<FatturaElettronicaHeader>"
        "<CedentePrestatore><DatiAnagrafici>"
        "<IdFiscaleIVA><IdPaese>IT</IdPaese><IdCodice>01234567890</IdCodice></IdFiscaleIVA>"
        f"<Anagrafica>{anagrafica}</Anagrafica>"
        "</DatiAnagrafici></CedentePrestatore>"
        "</FatturaElettronicaHeader>"
        "<FatturaElettronicaBody>"
        "<DatiGenerali><DatiGeneraliDocumento>"
        "<TipoDocumento>TD01</TipoDocumento>"
        f"<Data>{invoice_date}</Data>"
        f"<Numero>{escape(invoice_number)}</Numero>"
        f"{total_xml}"
        "</DatiGeneraliDocumento></DatiGenerali>"
        f"{body_lines}"
        "</FatturaElettronicaBody>"
        "</p:FatturaElettronica>"
    ).encode("utf-8")


@pytest.fixture
def invoice_xml():
    """Builder for invoice documents: invoice_xml([{"description": ..., "quantity": ...}])."""
    return build_invoice_xml


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "inventory.db"
    init_inventory_db(path)
    return path


@pytest.fixture
def catalog(db_path):
    return CatalogStore(db_path)


@pytest.fixture
def ledger(db_path):
    return LedgerStore(db_path)


@pytest.fixture
def unmatched(db_path):
    return UnmatchedRegistry(db_path)


@pytest.fixture
def documents(db_path):
    return DocumentRegistry(db_path)
