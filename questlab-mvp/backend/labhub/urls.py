from django.urls import path
from .views import (
    BackgroundServiceView,
    CompendiumFileListView,
    CompendiumRetrieveView,
    OrderTransmitView,
    RequisitionDownloadView,
)

urlpatterns = [
    path('compendium/files/', CompendiumFileListView.as_view(), name='compendium-files'),
    path('compendium/retrieve/', CompendiumRetrieveView.as_view(), name='compendium-retrieve'),
    path('orders/<int:order_id>/transmit/', OrderTransmitView.as_view(), name='order-transmit'),
    path('orders/<int:order_id>/requisition/', RequisitionDownloadView.as_view(), name='order-requisition'),
    path('background-service/', BackgroundServiceView.as_view(), name='background-service'),
]
