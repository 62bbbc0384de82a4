"""End-to-end tests for the command-line runner."""

import json

import pandas as pd
import pytest

from main import main, parse_sources


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    schema = {
        "sheetName": "Portfolio Review",
        "columnsConfig": [
            {"heading": "Portfolio", "id": "Portfolio", "column_type": "data", "data_type": "unique"},
            {"heading": "Principal", "id": "principal", "column_type": "data", "data_type": "currency",
             "source_name": "loan", "filter": "> 100"},
            {"heading": "Loan Type", "id": "Type_Code", "column_type": "data", "data_type": "integer",
             "source_name": "loan", "filter": "{{20}}"},
            {"heading": "Balance", "id": "average_balance", "column_type": "data", "data_type": "currency",
             "source_name": "checking"},
            {"heading": "Commission", "id": "commission", "column_type": "formula",
             "formula": "principal * 0.1", "data_type": "currency"},
        ],
    }
    (tmp_path / "schema.json").write_text(json.dumps(schema), encoding="utf-8")
    (tmp_path / "loans.csv").write_text(
        "Portfolio,Principal,Type_Code\nA,150,20\nA,50,20\nA,200,15\nC,300,20\n", encoding="utf-8")
    (tmp_path / "dda.csv").write_text("Portfolio,Average_Balance\nA,1000\n", encoding="utf-8")
    return tmp_path


class TestParseSources:
    def test_groups_paths_by_source(self):
        assert parse_sources(["loan=a.csv", "checking=b.csv", "loan=c.csv"]) == {
            "loan": ["a.csv", "c.csv"],
            "checking": ["b.csv"],
        }

    def test_rejects_pair_without_path(self):
        with pytest.raises(ValueError):
            parse_sources(["loan"])


class TestMain:
    """Tests for the main entry point."""

    def test_reconciles_to_csv(self, workspace):
        code = main(["schema.json", "--source", "loan=loans.csv", "--source", "checking=dda.csv",
                     "-o", "out.csv"])

        assert code == 0
        df = pd.read_csv(workspace / "out.csv")
        assert df["Portfolio"].tolist()[:2] == ["A", "C"]
        assert df["Principal"].tolist() == [350, 300, 650]
        # C has no checking row, so its single row carries no balance
        balances = df["Balance"].tolist()
        assert balances[0] == 1000 and balances[2] == 1000
        assert pd.isna(balances[1])
        assert df["Commission"].tolist() == pytest.approx([35, 30, 65])

    def test_default_output_named_after_sheet(self, workspace):
        assert main(["schema.json", "--source", "loan=loans.csv"]) == 0
        assert (workspace / "Portfolio Review.xlsx").exists()

    def test_missing_file_returns_error_code(self, workspace):
        assert main(["schema.json", "--source", "loan=missing.csv"]) == 1

    def test_warns_about_undeclared_sources(self, workspace, capsys):
        (workspace / "savings.csv").write_text("Portfolio,Rate\nA,0.02\n", encoding="utf-8")

        code = main(["schema.json", "--source", "loan=loans.csv", "--source", "savings=savings.csv",
                     "-o", "out.csv"])

        assert code == 0
        assert "[WARN] Sources not declared in the schema: ['savings']" in capsys.readouterr().out

    def test_requires_a_source(self, workspace):
        with pytest.raises(SystemExit):
            main(["schema.json"])
