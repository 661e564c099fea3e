"""File ingestion: delimited text, spreadsheets and batch uploads."""
import asyncio
from io import BytesIO

import pandas as pd
import pytest

from ingest import (
    IngestFailure,
    IngestSuccess,
    UploadedFile,
    find_header_line,
    find_header_row,
    ingest_batch,
    ingest_file,
    is_supported,
    split_csv_line,
)
from normalizer import NumberLocale
from store import BatchWriteError, InMemoryRecordStore

GOOD_CSV = (
    "Reporte de ventas generado el 03/02/2024\n"
    "\n"
    "FECHA,TIENDA,DESCRIPCION,GRUPO,Cantidad Vendida,Precio\n"
    '01/02/2024,Norte,"Canto, blanco",CANTOS,3,1000\n'
    "01/02/2024,Sur,Rollo,ROLLOS,2,50\n"
    "01/02/2024,Sur,Rollo,ROLLOS\n"
    "\n"
).encode("utf-8")


def _xlsx(rows):
    buf = BytesIO()
    pd.DataFrame(rows).to_excel(buf, index=False, header=False, engine="openpyxl")
    return buf.getvalue()


def test_split_csv_line_keeps_quoted_delimiters():
    assert split_csv_line('a,"b, c",d') == ["a", "b, c", "d"]
    assert split_csv_line("a;b;c", ";") == ["a", "b", "c"]
    assert split_csv_line('01/02/2024,Norte, "Canto, blanco",3') == ["01/02/2024", "Norte", "Canto, blanco", "3"]


def test_find_header_line_uses_markers():
    lines = ["Reporte", "  total", "TIENDA,FECHA", "x"]
    assert find_header_line(lines) == 2
    assert find_header_line(["nothing", "here"]) is None


def test_find_header_row_matches_any_cell():
    rows = [["Reporte", None], [None, "Código EAN del item"], ["x", "y"]]
    assert find_header_row(rows) == 1


def test_csv_with_preamble_quotes_and_malformed_lines():
    outcome = ingest_file(UploadedFile("ventas.csv", GOOD_CSV))

    assert isinstance(outcome, IngestSuccess)
    assert outcome.ok
    assert [r.product for r in outcome.records] == ["Canto, blanco", "Rollo"]
    assert outcome.records[0].total == 3000.0


def test_semicolon_delimited_text():
    content = "FECHA;TIENDA;DESCRIPCION;Cantidad\n01/02/2024;Norte;Canto;1.200\n".encode("utf-8")
    outcome = ingest_file(UploadedFile("ventas.txt", content))
    assert outcome.records[0].qty == 1200


def test_latin1_text_is_decoded():
    content = "TIENDA,Producto,Cantidad\nCañaveral,Canto,2\n".encode("latin-1")
    outcome = ingest_file(UploadedFile("ventas.csv", content))
    assert outcome.records[0].store == "Cañaveral"


def test_missing_header_is_a_file_failure():
    outcome = ingest_file(UploadedFile("bad.csv", b"a,b,c\n1,2,3\n"))
    assert isinstance(outcome, IngestFailure)
    assert not outcome.ok
    assert outcome.error == "No valid header in file bad.csv"


def test_unsupported_extension():
    assert not is_supported("ventas.pdf")
    outcome = ingest_file(UploadedFile("ventas.pdf", b"%PDF"))
    assert isinstance(outcome, IngestFailure)
    assert "Unsupported file type" in outcome.error


def test_corrupt_spreadsheet_is_a_file_failure():
    outcome = ingest_file(UploadedFile("ventas.xlsx", b"not a zip"))
    assert isinstance(outcome, IngestFailure)


def test_xlsx_first_sheet_with_title_rows():
    content = _xlsx([
        ["Informe de ventas", None, None, None],
        [None, None, None, None],
        ["FECHA", "TIENDA", "Descripción del Ítem", "Cantidad Vendida"],
        ["01/02/2024", "Norte", "Canto blanco", 5],
        ["02/02/2024", "Sur", "Rollo", 0],
        ["03/02/2024", "Sur", "Vinilo", 2],
    ])
    outcome = ingest_file(UploadedFile("ventas.xlsx", content))

    assert isinstance(outcome, IngestSuccess)
    assert [(r.store, r.product, r.qty) for r in outcome.records] == [
        ("Norte", "Canto blanco", 5),
        ("Sur", "Vinilo", 2),
    ]
    assert outcome.skipped == 1
    assert outcome.records[0].year == 2024


def test_xlsx_without_header_fails():
    outcome = ingest_file(UploadedFile("ventas.xlsx", _xlsx([["a", "b"], [1, 2]])))
    assert isinstance(outcome, IngestFailure)
    assert outcome.error == "No valid header in file ventas.xlsx"


def test_batch_keeps_going_when_one_file_fails():
    store = InMemoryRecordStore()
    files = [UploadedFile("bad.csv", b"no header here\n"), UploadedFile("ventas.csv", GOOD_CSV)]

    summary = asyncio.run(ingest_batch(files, store))

    assert [o.file_name for o in summary.outcomes] == ["bad.csv", "ventas.csv"]
    assert len(summary.failures) == 1
    assert summary.records_added == 2
    assert len(summary.records) == 2
    assert summary.message() == "2 records saved. Failed: 1 file(s)."
    assert asyncio.run(store.list_files()) == [{"file_id": "ventas.csv", "record_count": 2}]


def test_batch_with_only_failures_does_not_reload():
    store = InMemoryRecordStore()
    summary = asyncio.run(ingest_batch([UploadedFile("bad.csv", b"x\n")], store))
    assert summary.records is None
    assert summary.message() == "Error processing 1 file(s)."


def test_batch_locale_is_applied():
    content = "TIENDA,Producto,Cantidad,Precio\nNorte,A,2,\"1.500,25\"\n".encode("utf-8")
    store = InMemoryRecordStore()
    summary = asyncio.run(ingest_batch([UploadedFile("v.csv", content)], store, NumberLocale.COMMA_DECIMAL))
    assert summary.records[0].price == 1500.25


def test_batch_write_error_propagates():
    class BrokenStore(InMemoryRecordStore):
        async def _write_chunk(self, chunk, file_id):
            raise OSError("disk full")

    with pytest.raises(BatchWriteError) as excinfo:
        asyncio.run(ingest_batch([UploadedFile("ventas.csv", GOOD_CSV)], BrokenStore()))
    assert excinfo.value.file_id == "ventas.csv"


def test_space_before_quoted_field_keeps_the_row():
    content = 'FECHA,TIENDA,DESCRIPCION,Cantidad\n01/02/2024,Norte, "Canto, blanco",3\n'.encode("utf-8")
    outcome = ingest_file(UploadedFile("ventas.csv", content))
    assert [(r.product, r.qty) for r in outcome.records] == [("Canto, blanco", 3)]
