import pytest

from bq_db_adapter.adapter import BigQueryDbAdapter
from bq_db_adapter.config import AdapterConfig
from bq_db_adapter.context import TenantContext
from bq_db_adapter.gateway import RecordingEngine


ORG_ID = "58123dfd-cbcc-4350-8a49-24ee663d6db3"
IMPACT = "9e32ebd8-5d74-47c8-b69b-0bf655134bed"
PK = "Contacto__c"


@pytest.fixture
def test_config():
    return AdapterConfig(
        project_id="proof-of-impact",
        get_table_name=lambda ctx: f"Impact_{ctx.impact.replace('-', '_')}.compiled",
        get_id_key=lambda ctx=None: PK,
        get_region=lambda ctx: "US",
    )


@pytest.fixture
def tenant():
    return TenantContext(org=ORG_ID, impact=IMPACT)


@pytest.fixture
def engine():
    return RecordingEngine()


@pytest.fixture
def adapter(test_config, engine):
    adapter = BigQueryDbAdapter()
    adapter.init(test_config, engine=engine)
    return adapter
