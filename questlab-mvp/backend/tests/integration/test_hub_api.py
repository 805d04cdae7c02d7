"""
Integration tests — 真实 HTTP 请求打到 Django View，验证完整流程。

用 Django test Client，走完：
  HTTP Request → urls.py → View → Service → ORM → DB → Response

Hub 调用和 Celery task 被 mock 掉，不实际访问 Quest。
"""
import json
from unittest.mock import patch

import pytest

from labhub.exceptions import HttpError
from labhub.hub.compendium import CompendiumSync
from labhub.hub.orders import OrderTransmitter
from labhub.models import ProcedureOrder
from tests.conftest import ProcedureOrderFactory


def post_json(api_client, url, payload=None):
    response = api_client.post(url, data=json.dumps(payload or {}), content_type='application/json')
    return response.status_code, json.loads(response.content)


@pytest.fixture(autouse=True)
def _quest(quest_settings):
    pass


# ===================================================================
# Orders
# ===================================================================

@pytest.mark.django_db
class TestOrderTransmitApi:

    @patch('labhub.tasks.fetch_requisition')
    @patch.object(OrderTransmitter, 'transmit', return_value='accepted')
    def test_transmit_success(self, mock_transmit, mock_task, api_client):
        order = ProcedureOrderFactory()

        status, body = post_json(api_client, f'/api/orders/{order.id}/transmit/')

        assert status == 200
        assert body['status'] == 'transmitted'
        assert body['requisition_status'] == 'pending'
        assert 'type' not in body
        mock_task.apply_async.assert_called_once()

    @patch('labhub.tasks.fetch_requisition')
    @patch.object(OrderTransmitter, 'transmit')
    def test_hub_rejection_returns_502(self, mock_transmit, mock_task, api_client):
        mock_transmit.side_effect = HttpError('Quest hub request failed', status_code=401,
                                              response_body='{"error":"invalid_token"}')
        order = ProcedureOrderFactory()

        status, body = post_json(api_client, f'/api/orders/{order.id}/transmit/')

        assert status == 502
        assert body['type'] == 'http_error'
        assert body['detail']['status_code'] == 401
        assert body['detail']['response_body'] == '{"error":"invalid_token"}'
        assert ProcedureOrder.objects.get(id=order.id).status == 'failed'

    def test_unknown_order_returns_404(self, api_client):
        status, body = post_json(api_client, '/api/orders/999999/transmit/')

        assert status == 404
        assert body['code'] == 'ORDER_NOT_FOUND'


@pytest.mark.django_db
class TestRequisitionDownloadApi:

    def test_download_pdf(self, api_client, hub_config):
        hub_config.requisition_dir.mkdir(parents=True)
        (hub_config.requisition_dir / 'labRequisition-7.pdf').write_bytes(b'%PDF-1.4 body')
        order = ProcedureOrderFactory(requisition_status='completed', requisition_filename='labRequisition-7.pdf')

        response = api_client.get(f'/api/orders/{order.id}/requisition/')

        assert response.status_code == 200
        assert response['Content-Type'] == 'application/pdf'
        assert b''.join(response.streaming_content) == b'%PDF-1.4 body'

    def test_not_ready_returns_400(self, api_client):
        order = ProcedureOrderFactory(requisition_status='pending')

        response = api_client.get(f'/api/orders/{order.id}/requisition/')

        assert response.status_code == 400
        assert json.loads(response.content)['code'] == 'REQUISITION_NOT_READY'


# ===================================================================
# Compendium
# ===================================================================

@pytest.mark.django_db
class TestCompendiumApi:

    @patch.object(CompendiumSync, 'request_file_list')
    def test_file_list(self, mock_list, api_client):
        mock_list.return_value = {
            'full': [{'fileName': 'TMP_CDC_FULL_STL.zip', 'retrieveURI': '/oauth2/TMP_CDC_FULL_STL.zip'}],
        }

        response = api_client.get('/api/compendium/files/')
        body = json.loads(response.content)

        assert response.status_code == 200
        assert body['file_name'] == 'TMP_CDC_FULL_STL.zip'
        assert body['retrieve_uri'] == '/hub-resource-server/oauth2/TMP_CDC_FULL_STL.zip'

    def test_retrieve_missing_params_returns_400(self, api_client):
        status, body = post_json(api_client, '/api/compendium/retrieve/', {'fileName': 'f.zip'})

        assert status == 400
        assert body['code'] == 'COMPENDIUM_PARAMS_MISSING'

    @patch.object(CompendiumSync, 'download', return_value='Error downloading file. Status code: 404')
    def test_retrieve_returns_message(self, mock_download, api_client):
        status, body = post_json(api_client, '/api/compendium/retrieve/',
                                 {'fileName': 'f.zip', 'retrieveURI': '/x'})

        assert status == 200
        assert body == {'message': 'Error downloading file. Status code: 404'}


# ===================================================================
# Background service
# ===================================================================

@pytest.mark.django_db
class TestBackgroundServiceApi:

    def test_default_inactive(self, api_client):
        response = api_client.get('/api/background-service/')
        assert json.loads(response.content) == {'name': 'Quest_Lab_Hub', 'active': False}

    def test_activate(self, api_client):
        status, body = post_json(api_client, '/api/background-service/', {'active': True})

        assert status == 200
        assert body['active'] is True
        assert json.loads(api_client.get('/api/background-service/').content)['active'] is True

    @pytest.mark.parametrize('value', ['false', 'False', '0', 0, False, 'off'])
    def test_false_strings_deactivate(self, api_client, value):
        post_json(api_client, '/api/background-service/', {'active': True})

        status, body = post_json(api_client, '/api/background-service/', {'active': value})

        assert status == 200
        assert body['active'] is False

    @pytest.mark.parametrize('payload', [{'active': 'maybe'}, {}])
    def test_unrecognised_value_returns_400(self, api_client, payload):
        status, body = post_json(api_client, '/api/background-service/', payload)

        assert status == 400
        assert body['type'] == 'validation_error'
        assert json.loads(api_client.get('/api/background-service/').content)['active'] is False

