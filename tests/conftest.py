import pytest
import json
import sys
import os
import logging
from datetime import datetime
from pathlib import Path

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from edi_options import X12EnvelopeOptions

# ==============================================================================
# PYTEST CONFIGURATION & HOOKS
# ==============================================================================

def pytest_configure(config):
    """Configure pytest settings and markers."""
    config.addinivalue_line("markers", "unit: Pure unit tests with no external dependencies.")
    config.addinivalue_line("markers", "integration: End-to-end translation workflows across several modules.")

@pytest.fixture(scope="session", autouse=True)
def setup_test_environment(pytestconfig):
    """Set up test environment with logging configuration."""
    # Use pytest's log_cli_level if available, otherwise default to INFO
    log_level = pytestconfig.getoption("log_cli_level") or "INFO"
    logging.basicConfig(
        level=log_level.upper(),
        format="[%(asctime)s] [%(levelname)s] [%(name)s:%(lineno)d] - %(message)s",
        stream=sys.stdout,
        force=True,
    )
    logging.info(f"Test logging configured with level: {log_level.upper()}")
    yield

# ==============================================================================
# SAMPLE X12 DOCUMENTS
# ==============================================================================

# Fixed-width ISA: 106 characters including the segment terminator.
ISA_SEGMENT = "ISA*00*          *00*          *ZZ*SENDERID       *ZZ*RECEIVERID     *240715*1200*^*00501*000000001*0*P*>~"

PO_850_BODY = """
ST*850*0001~
BEG*00*NE*PO-100**20240101~
CUR*BY*USD~
DTM*010*20240115~
N1*BY*ACME STORES*92*BUYER01~
N1*SE*WIDGET CO*92*VEND01~
PO1*1*5*EA*10.00**VP*SKU-1~
PID*F****Blue widget~
PO1*2*3*EA*2.50**VP*SKU-2~
CTT*2*8~
SE*11*0001~
""".strip()

INVOICE_810_BODY = """
ST*810*0002~
BIG*20240201*INV-1**PO-100~
ITD*01*3**********NET 30~
IT1*1*5*EA*10.00**VP*SKU-1~
IT1*2*3*EA*2.50**VP*SKU-2~
TDS*5750~
CTT*2~
SE*8*0002~
""".strip()

SHIP_NOTICE_856_BODY = """
ST*856*0003~
BSN*00*SHIP-1*20240301*1200~
HL*1**S*1~
TD5**2*UPSN~
REF*CN*1Z999~
HL*2*1*O*1~
PRF*PO-100~
HL*3*2*I*0~
LIN**VP*SKU-1~
SN1*1*5*EA~
HL*4*2*I*0~
LIN**VP*SKU-2~
SN1*2*3*EA~
CTT*2*8~
SE*15*0003~
""".strip()


def wrap_in_envelope(body: str, functional_identifier: str, transaction_count: int = 1) -> str:
    """Wrap transaction sets in a one-group ISA/GS envelope."""
    return "\n".join([
        ISA_SEGMENT,
        f"GS*{functional_identifier}*SENDER*RECEIVER*20240715*1200*1*X*004010~",
        body,
        f"GE*{transaction_count}*1~",
        "IEA*1*000000001~",
    ])


@pytest.fixture(scope="session")
def x12_850_string() -> str:
    """A compliant enveloped 850 with two lines and a CTT trailer."""
    return wrap_in_envelope(PO_850_BODY, "PO")


@pytest.fixture(scope="session")
def x12_810_string() -> str:
    """A compliant enveloped 810 whose TDS total (57.50) matches its lines."""
    return wrap_in_envelope(INVOICE_810_BODY, "IN")


@pytest.fixture(scope="session")
def x12_856_string() -> str:
    """A compliant enveloped 856 with shipment, order and two item HL levels."""
    return wrap_in_envelope(SHIP_NOTICE_856_BODY, "SH")


@pytest.fixture(scope="session")
def bare_850_string() -> str:
    """The 850 transaction set without ISA/GS envelopes."""
    return PO_850_BODY


@pytest.fixture(scope="session")
def x12_batch_string() -> str:
    """
    One functional group holding two transaction sets:
    - 0001: a valid 850
    - 0002: an 855, which the engine does not translate
    """
    unsupported = "ST*855*0002~\nBAK*00*AC*PO-100*20240101~\nSE*3*0002~"
    return wrap_in_envelope(PO_850_BODY + "\n" + unsupported, "PO", transaction_count=2)


@pytest.fixture(scope="session")
def envelope_options() -> X12EnvelopeOptions:
    return X12EnvelopeOptions(
        sender_id="SENDERID",
        receiver_id="RECEIVERID",
        timestamp=datetime(2024, 7, 15, 12, 0),
        control_number=1,
    )

# ==============================================================================
# MAPPING CONFIGURATION
# ==============================================================================

@pytest.fixture
def mapping_dir(tmp_path: Path) -> Path:
    """Create a temporary directory with base and partner-specific document maps."""
    base_850 = {
        "documentType": "850",
        "mapName": "Base 850 CSV",
        "mappingRules": [
            {"sourceField": "PO Number", "targetField": "orderNumber"},
            {"sourceField": "PO Date", "targetField": "orderDate"},
            {"sourceField": "SKU", "targetField": "itemId"},
            {"sourceField": "Qty", "targetField": "quantity"},
            {"sourceField": "Price", "targetField": "unitPrice"},
        ],
    }
    (tmp_path / "850_base.json").write_text(json.dumps(base_850))

    partner_dir = tmp_path / "partner-specific" / "acme"
    partner_dir.mkdir(parents=True)
    partner_850 = {
        "documentType": "850",
        "mapName": "ACME 850",
        "mappingRules": [
            {"sourceField": "Order", "targetField": "orderNumber"},
            {"sourceField": "Date", "targetField": "orderDate"},
            {"sourceField": "Item", "targetField": "itemId"},
            {"sourceField": "Units", "targetField": "quantity"},
        ],
    }
    (partner_dir / "850_acme.json").write_text(json.dumps(partner_850))

    # Malformed map
    (tmp_path / "malformed.json").write_text("{'invalid_json':}")

    return tmp_path
