import logging
import time
from pathlib import Path

from celery import shared_task

from .exceptions import BaseAppException, HttpError, TransportError

logger = logging.getLogger(__name__)

REQUISITION_BASE_DELAY = 2   # 秒


@shared_task(
    bind=True,
    max_retries=2,                            # 共 3 次尝试
    default_retry_delay=REQUISITION_BASE_DELAY,
    acks_late=True,
    reject_on_worker_lost=True,
)
def fetch_requisition(self, order_id):
    """
    从 Quest 拉 requisition PDF。

    重试策略：
      - 最多 3 次尝试（dispatch 时已经等了 2s 给 Hub 处理时间）
      - 指数退避：2s → 4s
      - 只有 HttpError / TransportError 重试
      - 超出次数后把 requisition 标记为 failed，不往外抛
    """
    from labhub.hub.requisition import RequisitionFetcher
    from labhub.models import ProcedureOrder
    from labhub.services import build_gateway, get_hub_config

    attempt = self.request.retries + 1
    logger.info("[Celery][fetch_requisition] order_id=%s (attempt %d/%d)",
                order_id, attempt, self.max_retries + 1)

    try:
        order = ProcedureOrder.objects.get(id=order_id)
    except ProcedureOrder.DoesNotExist:
        logger.error("[Celery] Order %s 不存在，跳过", order_id)
        return None

    try:
        config = get_hub_config()
        fetcher = RequisitionFetcher(build_gateway(config), config.requisition_dir)
        document = fetcher.fetch(order.order_hl7, order)
    except (HttpError, TransportError) as exc:
        logger.warning("[Celery] order_id=%s requisition 失败 (attempt %d): %s",
                       order_id, attempt, exc.message)
        if isinstance(exc, HttpError) and exc.response_body:
            logger.debug("[Celery] hub response body: %s", exc.response_body)

        if self.request.retries < self.max_retries:
            # countdown = 2 * 2^retries → 2s, 4s
            countdown = self.default_retry_delay * (2 ** self.request.retries)
            logger.info("[Celery] 将在 %ds 后重试 (第 %d 次)...", countdown, self.request.retries + 1)
            raise self.retry(exc=exc, countdown=countdown)

        logger.error("[Celery] order_id=%s requisition 已达最大尝试次数，标记为 failed", order_id)
        _mark_requisition_failed(order, f"[{attempt} 次尝试后仍失败] {exc.message}")
        return None
    except BaseAppException as exc:
        # ConfigError / FileSystemError / ParseError：重试没有意义
        logger.error("[Celery] order_id=%s requisition 失败，不重试: %s", order_id, exc.message)
        _mark_requisition_failed(order, exc.message)
        return None

    order.requisition_status = 'completed'
    order.requisition_filename = document.filename
    order.save(update_fields=['requisition_status', 'requisition_filename', 'updated_at'])
    logger.info("[Celery] order_id=%s requisition 完成 file=%s", order_id, document.filename)
    return document.filename


def _mark_requisition_failed(order, message):
    order.requisition_status = 'failed'
    order.error_message = message
    order.save(update_fields=['requisition_status', 'error_message', 'updated_at'])


@shared_task
def poll_hl7_results():
    """
    后台服务开启时，向 Quest 拉 HL7 结果，原始响应写入 results 目录。
    返回写入的文件路径；服务未开启时返回 None。
    """
    from labhub.hub.orders import ResultRetriever
    from labhub.hub.requisition import ensure_directory
    from labhub.services import background_service_status, build_gateway, get_hub_config

    if not background_service_status():
        logger.info("[Celery][poll_hl7_results] background service inactive, skipping")
        return None

    config = get_hub_config()
    body = ResultRetriever(build_gateway(config)).send_for_results()

    directory = ensure_directory(config.results_dir)
    path = Path(directory) / f"results-{time.strftime('%Y%m%d%H%M%S')}.json"
    path.write_text(body, encoding="utf-8")
    logger.info("[Celery][poll_hl7_results] results saved to %s", path)
    return str(path)
