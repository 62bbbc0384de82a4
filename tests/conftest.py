import copy

import pytest

from reconciler.schema import ColumnSpec, Schema

LOAN_DOCUMENT = {
    "sheetName": "Local Sheets",
    "columnsConfig": [
        {"heading": "Portfolio", "id": "Portfolio", "column_type": "data", "data_type": "unique"},
        {"heading": "Principal", "id": "principal", "column_type": "data", "data_type": "currency",
         "source_name": "loan"},
        {"heading": "Loan Type", "id": "Type_Code", "column_type": "data", "data_type": "integer",
         "source_name": "loan", "filter": "{{20}}"},
        {"heading": "Payment", "id": "Last_Payment", "column_type": "data", "data_type": "currency",
         "source_name": "loan"},
        {"heading": "Maturity", "id": "maturity_date", "column_type": "data", "data_type": "date",
         "source_name": "loan", "filter": "< 2039-12-11"},
        {"heading": "Rate", "id": "rate", "column_type": "data", "data_type": "rate", "source_name": "loan"},
        {"heading": "Balance", "id": "average_balance", "column_type": "data", "data_type": "currency",
         "source_name": "checking"},
        {"heading": "Average", "id": "averageBalance", "column_type": "function",
         "function": "averageBalance(principal, Last_Payment, rate, maturity_date)", "data_type": "currency"},
        {"heading": "Commission", "id": "commission", "column_type": "formula",
         "formula": "averageBalance * 0.1", "data_type": "currency"},
    ],
}


@pytest.fixture
def loan_document():
    """Return a fresh copy of the loan sheet schema document."""
    return copy.deepcopy(LOAN_DOCUMENT)


@pytest.fixture
def loan_schema(loan_document):
    return Schema.from_document(loan_document)


@pytest.fixture
def portfolio_schema():
    """Schema with a truth-propagating type filter and a principal row filter."""
    return Schema([
        ColumnSpec("Portfolio", "portfolio", "data", "unique"),
        ColumnSpec("Principal", "principal", "data", "currency", source_name="loan", filter="> 100"),
        ColumnSpec("Loan Type", "Type_Code", "data", "integer", source_name="loan", filter="{{20}}"),
        ColumnSpec("Payment", "Last_Payment", "data", "currency", source_name="loan"),
    ])


@pytest.fixture
def portfolio_rows():
    return [
        {"portfolio": "A", "principal": "150", "__source": "loan", "Type_Code": "20", "Last_Payment": "1000"},
        {"portfolio": "A", "principal": "50", "__source": "loan", "Type_Code": "20", "Last_Payment": "1000"},
        {"portfolio": "A", "principal": "200", "__source": "loan", "Type_Code": "15", "Last_Payment": "2000"},
        {"portfolio": "C", "principal": "300", "__source": "loan", "Type_Code": "20", "Last_Payment": "3000"},
    ]
