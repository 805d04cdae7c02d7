import base64
import logging

from .gateway import HubGateway

logger = logging.getLogger(__name__)

ORDER_DOCUMENT_PATH = "/hub-resource-server/oauth2/order/document"
RESULTS_PATH = "/hub-resource-server/oauth2/result/getResults"

ALL_DOCUMENT_TYPES = ["ABN", "REQ", "AOE"]


def encode_order(order) -> str:
    """HL7 原文（bytes / str）→ base64 字符串。"""
    if isinstance(order, str):
        order = order.encode("utf-8")
    return base64.b64encode(order).decode("ascii")


def build_order_payload(order, document_types=None) -> dict:
    return {
        "orderHl7": encode_order(order),
        "documentTypes": list(document_types or ALL_DOCUMENT_TYPES),
    }


class OrderTransmitter:
    """把 HL7 order 发给 Hub，原样返回 Hub 的响应。落库由调用方负责。"""

    def __init__(self, gateway: HubGateway):
        self.gateway = gateway

    def transmit(self, order) -> str:
        logger.debug("[QuestHub] order payload transmission started")
        return self.gateway.post(ORDER_DOCUMENT_PATH, build_order_payload(order))


class ResultRetriever:

    def __init__(self, gateway: HubGateway):
        self.gateway = gateway

    def send_for_results(self) -> str:
        logger.debug("[QuestHub] requesting HL7 results")
        return self.gateway.post(RESULTS_PATH, {"resultServiceType": "HL7"})
