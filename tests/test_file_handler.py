"""Tests for loading source files and exporting results."""

import openpyxl
import pandas as pd
import pytest

from reconciler.errors import CellError
from reconciler.file_handler import export_to_file, load_source_files, read_table
from reconciler.grouping import build_groups, compute_totals
from reconciler.schema import ColumnSpec, Schema


@pytest.fixture
def loan_csv(tmp_path):
    path = tmp_path / "loans.csv"
    path.write_text("Portfolio,principal,Type_Code\nA,150,20\nB,,15\nC,300\n", encoding="utf-8")
    return path


class TestReadTable:
    def test_cells_read_as_text(self, loan_csv):
        headers, values = read_table(str(loan_csv))

        assert headers == ["Portfolio", "principal", "Type_Code"]
        assert values[0] == ["A", "150", "20"]

    def test_empty_and_missing_cells(self, loan_csv):
        _, values = read_table(str(loan_csv))

        assert values[1] == ["B", "", "15"]
        assert values[2] == ["C", "300", None]

    def test_quoted_commas_do_not_count_as_fields(self, tmp_path):
        path = tmp_path / "quoted.csv"
        path.write_text('Portfolio,principal,Type_Code\nA,"1,500"\nB,"2,000",20\n', encoding="utf-8")

        _, values = read_table(str(path))

        assert values == [["A", "1,500", None], ["B", "2,000", "20"]]

    def test_latin1_fallback(self, tmp_path):
        path = tmp_path / "branches.csv"
        path.write_bytes("Portfolio,Branch\nA,Montréal\n".encode("latin-1"))

        _, values = read_table(str(path))

        assert values == [["A", "Montréal"]]


class TestLoadSourceFiles:
    """Tests for load_source_files."""

    def test_rows_tagged_with_source(self, loan_csv):
        rows_by_source = load_source_files({"loan": [str(loan_csv)]})

        rows = rows_by_source["loan"]
        assert len(rows) == 3
        assert rows[0] == {"Portfolio": "A", "principal": "150", "Type_Code": "20", "__source": "loan"}

    def test_files_kept_in_listed_order(self, tmp_path):
        first = tmp_path / "q1.csv"
        second = tmp_path / "q2.csv"
        first.write_text("Portfolio\nA\nB\n", encoding="utf-8")
        second.write_text("Portfolio\nC\n", encoding="utf-8")

        rows_by_source = load_source_files({"loan": [str(first), str(second)], "checking": [str(second)]})

        assert list(rows_by_source) == ["loan", "checking"]
        assert [row["Portfolio"] for row in rows_by_source["loan"]] == ["A", "B", "C"]
        assert rows_by_source["checking"][0]["__source"] == "checking"

    def test_short_line_cells_are_none(self, loan_csv):
        rows = load_source_files({"loan": [str(loan_csv)]})["loan"]

        assert rows[1]["principal"] == ""
        assert rows[2]["Type_Code"] is None

    def test_progress_callback(self, loan_csv):
        calls = []
        load_source_files({"loan": [str(loan_csv)]}, progress_callback=lambda *args: calls.append(args))
        assert calls == [(1, 1, "loans.csv")]

    def test_no_files(self):
        with pytest.raises(ValueError, match="No source files"):
            load_source_files({"loan": []})


class TestExport:
    """Tests for export_to_file."""

    @pytest.fixture
    def groups(self, portfolio_schema, portfolio_rows):
        return build_groups(portfolio_rows, portfolio_schema)

    def test_csv_holds_results_and_totals(self, groups, portfolio_schema, tmp_path):
        path = str(tmp_path / "sheet.csv")
        totals = compute_totals([g.combined for g in groups], portfolio_schema)

        export_to_file(groups, totals, portfolio_schema, path)

        df = pd.read_csv(path)
        assert list(df.columns) == ["Portfolio", "Principal", "Loan Type", "Payment"]
        assert df["Principal"].tolist() == [350, 300, 650]

    def test_xlsx_sheets(self, groups, portfolio_schema, tmp_path):
        path = str(tmp_path / "sheet.xlsx")
        totals = compute_totals([g.combined for g in groups], portfolio_schema)
        errors = [CellError(0, "Payment", "something failed")]

        export_to_file(groups, totals, portfolio_schema, path, errors=errors)

        sheets = pd.read_excel(path, sheet_name=None)
        assert list(sheets) == ["Results", "Details", "Errors"]
        assert len(sheets["Results"]) == 3
        assert sheets["Details"]["Group"].tolist() == ["A", "A"]
        assert sheets["Errors"].iloc[0].tolist() == [1, "Payment", "FunctionRuntimeError", "something failed"]

    def test_xlsx_number_formats_by_data_type(self, tmp_path):
        schema = Schema([
            ColumnSpec("Portfolio", "portfolio", "data", "unique"),
            ColumnSpec("Principal", "principal", "data", "currency"),
            ColumnSpec("Rate", "rate", "data", "rate"),
            ColumnSpec("Ratio", "ratio", "data", "float"),
            ColumnSpec("Type", "type", "data", "integer"),
        ])
        rows = [{"portfolio": "A", "principal": "1500", "rate": "0.05", "ratio": "1.234", "type": "20"}]
        groups = build_groups(rows, schema)
        path = str(tmp_path / "formatted.xlsx")

        export_to_file(groups, compute_totals([g.combined for g in groups], schema), schema, path)

        sheet = openpyxl.load_workbook(path)["Results"]
        assert [sheet.cell(row=2, column=c).value for c in range(2, 6)] == [1500, 0.05, 1.234, 20]
        assert [sheet.cell(row=2, column=c).number_format for c in range(2, 6)] == [
            "$#,##0.00", "0.00%", "0.00", "0"]

    def test_xlsx_without_combined_groups_or_errors(self, portfolio_schema, tmp_path):
        path = str(tmp_path / "single.xlsx")
        rows = [{"portfolio": "C", "principal": "300", "__source": "loan", "Type_Code": "20"}]
        groups = build_groups(rows, portfolio_schema)

        export_to_file(groups, compute_totals([g.combined for g in groups], portfolio_schema), portfolio_schema, path)

        assert list(pd.read_excel(path, sheet_name=None)) == ["Results"]
