from django.http import FileResponse, JsonResponse
from rest_framework.fields import BooleanField
from rest_framework.views import APIView

from . import services
from .serializers import (
    serialize_background_service,
    serialize_compendium_files,
    serialize_order_transmitted,
)


class CompendiumFileListView(APIView):
    """GET /api/compendium/files/ - List compendium files available on the hub"""

    def get(self, request):
        result = services.list_compendium_files()
        return JsonResponse(serialize_compendium_files(result))


class CompendiumRetrieveView(APIView):
    """POST /api/compendium/retrieve/ - Download, unzip and import a compendium file"""

    def post(self, request):
        data = request.data
        message = services.retrieve_compendium(data.get('fileName'), data.get('retrieveURI'))
        return JsonResponse({'message': message})


class OrderTransmitView(APIView):
    """POST /api/orders/<order_id>/transmit/ - Send an order to Quest"""

    def post(self, request, order_id):
        order = services.transmit_order(order_id)
        return JsonResponse(serialize_order_transmitted(order))


class RequisitionDownloadView(APIView):
    """GET /api/orders/<order_id>/requisition/ - Download the requisition PDF"""

    def get(self, request, order_id):
        path = services.get_requisition_path(order_id)
        return FileResponse(open(path, 'rb'), as_attachment=True, filename=path.name,
                            content_type='application/pdf')


class BackgroundServiceView(APIView):
    """GET/POST /api/background-service/ - Results poller status"""

    def get(self, request):
        return JsonResponse(serialize_background_service(services.background_service_status()))

    def post(self, request):
        # "false" / "0" / "off" 都是 False；无法识别的值 → 400
        active = BooleanField().to_internal_value(request.data.get('active'))
        service = services.set_background_service(active)
        return JsonResponse(serialize_background_service(service.active))
