"""
Service 层 — host 直接调用的入口。

原来挂在事件上的逻辑（lab.transmit / lab.post_order_load）在这里变成普通函数，
host 自己决定在哪里调用。View 和 Celery task 都只调这里。
"""

import logging
from pathlib import Path

from .exceptions import BlockError, HubError, ValidationError
from .hub.compendium import CompendiumSync, select_full_compendium
from .hub.gateway import HubGateway
from .hub.orders import OrderTransmitter
from .hub.token import TokenProvider
from .hub.types import HubConfig
from .models import BackgroundService, ProcedureOrder, ProcedureProvider

logger = logging.getLogger(__name__)

RESULTS_SERVICE_NAME = 'Quest_Lab_Hub'


def get_hub_config():
    return HubConfig.from_settings()


def build_gateway(config=None):
    """Raises ConfigError if client id / secret are missing."""
    config = config or get_hub_config()
    return HubGateway(TokenProvider(config))


def get_quest_provider(config=None):
    config = config or get_hub_config()
    provider, _ = ProcedureProvider.objects.get_or_create(name=config.provider_name)
    return provider


def get_order(order_id):
    """Get order by ID. Raises BlockError if not found."""
    try:
        return ProcedureOrder.objects.get(id=order_id)
    except ProcedureOrder.DoesNotExist:
        raise BlockError(
            message='Order not found',
            code='ORDER_NOT_FOUND',
            detail={'order_id': str(order_id)},
            http_status=404,
        )


def transmit_order(order_id, config=None):
    """
    把 order 发给 Quest，然后（如果开启）异步拉 requisition。

    requisition 是次要步骤：它失败不影响 order 本身的发送结果。
    Raises HubError：由调用方（View / host）负责展示。
    """
    config = config or get_hub_config()
    order = get_order(order_id)

    if not order.order_hl7:
        raise ValidationError(
            message='Order has no HL7 payload',
            code='ORDER_HL7_MISSING',
            detail={'order_id': str(order.id)},
        )

    try:
        response = OrderTransmitter(build_gateway(config)).transmit(order.order_hl7)
    except HubError as exc:
        logger.error("[transmit_order] order_id=%s failed: %s", order.id, exc.message)
        order.status = 'failed'
        order.error_message = exc.message
        order.save(update_fields=['status', 'error_message', 'updated_at'])
        raise

    order.status = 'transmitted'
    order.transmit_response = response
    order.error_message = None
    update_fields = ['status', 'transmit_response', 'error_message', 'updated_at']

    if config.download_requisition:
        order.requisition_status = 'pending'
        update_fields.append('requisition_status')
    order.save(update_fields=update_fields)
    logger.info("[transmit_order] order_id=%s transmitted", order.id)

    if config.download_requisition:
        from labhub.tasks import REQUISITION_BASE_DELAY, fetch_requisition
        # Hub 收到 order 后需要一点时间才能生成 requisition，第一次也要等
        fetch_requisition.apply_async(args=[order.id], countdown=REQUISITION_BASE_DELAY)
        logger.info("[transmit_order] requisition fetch queued order_id=%s", order.id)

    return order


def get_requisition_path(order_id, config=None):
    """Raises BlockError on not found, ValidationError if not ready."""
    config = config or get_hub_config()
    order = get_order(order_id)

    if order.requisition_status != 'completed' or not order.requisition_filename:
        raise ValidationError(
            message='Requisition not ready yet',
            code='REQUISITION_NOT_READY',
            detail={'order_id': str(order.id), 'requisition_status': order.requisition_status},
        )

    path = Path(config.requisition_dir) / order.requisition_filename
    if not path.is_file():
        raise BlockError(
            message='Requisition file is missing',
            code='REQUISITION_FILE_MISSING',
            detail={'order_id': str(order.id), 'filename': order.requisition_filename},
            http_status=404,
        )
    return path


# ── Compendium ─────────────────────────────────────────────────────────────

def _compendium_sync(config):
    return CompendiumSync(build_gateway(config), get_quest_provider(config), config)


def list_compendium_files(config=None):
    config = config or get_hub_config()
    listing = _compendium_sync(config).request_file_list()
    file_name, retrieve_uri = select_full_compendium(listing)
    return {
        'files': listing,
        'file_name': file_name,
        'retrieve_uri': retrieve_uri,
    }


def retrieve_compendium(file_name, retrieve_uri, config=None):
    if not file_name or not retrieve_uri:
        raise ValidationError(
            message='File Name or Retrieve URI is empty',
            code='COMPENDIUM_PARAMS_MISSING',
        )
    config = config or get_hub_config()
    return _compendium_sync(config).download(file_name, retrieve_uri)


# ── Background results service ─────────────────────────────────────────────

def background_service_status():
    service = BackgroundService.objects.filter(name=RESULTS_SERVICE_NAME).first()
    return bool(service and service.active)


def set_background_service(active):
    service, _ = BackgroundService.objects.get_or_create(
        name=RESULTS_SERVICE_NAME,
        defaults={'title': 'Quest Lab Hub results', 'execute_interval': 60},
    )
    service.active = bool(active)
    service.save(update_fields=['active', 'updated_at'])
    logger.info("[background_service] %s active=%s", RESULTS_SERVICE_NAME, service.active)
    return service
