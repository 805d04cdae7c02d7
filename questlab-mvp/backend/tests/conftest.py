"""
Shared fixtures for all tests.

factory-boy factories live here so both unit/ and integration/ can import them.
"""
import json
from unittest.mock import patch

import factory
import pytest
import requests
from django.test import Client

from labhub.hub.token import TokenProvider
from labhub.hub.types import HubConfig, Token
from labhub.models import (
    ProcedureAnswer,
    ProcedureOrder,
    ProcedureOrderCode,
    ProcedureProvider,
    ProcedureQuestion,
    ProcedureType,
)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

class ProcedureProviderFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = ProcedureProvider
        django_get_or_create = ('name',)

    name = 'Quest'
    receiver_facility_id = 'STL'


class ProcedureTypeFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = ProcedureType

    lab = factory.SubFactory(ProcedureProviderFactory)
    name = 'CBC'
    procedure_code = factory.Sequence(lambda n: f'{10000 + n}')
    procedure_type = 'ord'
    specimen = 'Serum'


class ProcedureQuestionFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = ProcedureQuestion

    lab = factory.SubFactory(ProcedureProviderFactory)
    procedure_code = '12345'
    question_code = factory.Sequence(lambda n: f'Q{n}')
    question_text = 'Fasting?'
    fldtype = 'T'


class ProcedureOrderFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = ProcedureOrder

    patient_id = factory.Sequence(lambda n: f'{1000 + n}')
    billing_type = 'P'
    abn_status = 'not_required'
    order_hl7 = 'MSH|^~\\&|OPENEMR|CLINIC|QUEST|STL|20240101||ORM^O01|1|P|2.3.1\r'


class ProcedureOrderCodeFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = ProcedureOrderCode

    order = factory.SubFactory(ProcedureOrderFactory)
    seq = 1
    procedure_code = '12345'


class ProcedureAnswerFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = ProcedureAnswer

    order = factory.SubFactory(ProcedureOrderFactory)
    procedure_order_seq = 1
    question_code = 'Q0'
    answer = 'Y'


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def fake_response(status_code=200, body=''):
    """真实的 requests.Response，内容已就绪（text / json / iter_content 都可用）。"""
    if not isinstance(body, (str, bytes)):
        body = json.dumps(body)
    if isinstance(body, str):
        body = body.encode('utf-8')
    response = requests.Response()
    response.status_code = status_code
    response._content = body
    response._content_consumed = True
    response.encoding = 'utf-8'
    return response


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def api_client():
    """Django test client for integration tests."""
    return Client()


@pytest.fixture
def hub_config(tmp_path):
    return HubConfig(
        client_id='client-id',
        client_secret='client-secret',
        production_mode=False,
        download_requisition=True,
        drive_encryption=True,
        timeout=5,
        requisition_dir=tmp_path / 'labs',
        temp_dir=tmp_path / 'temp',
        results_dir=tmp_path / 'results',
    )


@pytest.fixture
def quest_settings(settings, hub_config):
    """让 HubConfig.from_settings() 得到和 hub_config 一样的配置。"""
    settings.QUEST_CLIENT_ID = hub_config.client_id
    settings.QUEST_CLIENT_SECRET = hub_config.client_secret
    settings.QUEST_PRODUCTION_MODE = False
    settings.QUEST_DOWNLOAD_REQUISITION = True
    settings.QUEST_REQUISITION_DIR = hub_config.requisition_dir
    settings.QUEST_TEMP_DIR = hub_config.temp_dir
    settings.QUEST_RESULTS_DIR = hub_config.results_dir
    settings.DRIVE_ENCRYPTION = True
    return settings


@pytest.fixture
def stub_token():
    """跳过 token endpoint，直接给一个固定 token。"""
    with patch.object(TokenProvider, 'get_token', return_value=Token(access_token='test-token', issued_at=0)) as mock:
        yield mock
