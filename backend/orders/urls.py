from django.urls import path
from . import views

app_name = 'orders'

urlpatterns = [
    # Client order APIs
    path('', views.orders, name='orders'),
    path('quote/', views.quote_order, name='quote'),
    path('<int:order_id>/', views.order_detail, name='order-detail'),
    path('<int:order_id>/cancel/', views.cancel_order, name='cancel-order'),
    path('<int:order_id>/status/', views.update_order_status, name='order-status'),

    # Admin
    path('<int:order_id>/confirm-payment/', views.confirm_payment, name='confirm-payment'),
    path('<int:order_id>/redispatch/', views.redispatch_order, name='redispatch-order'),
    path('exhausted/', views.exhausted_orders, name='exhausted-orders'),

    # Delivery person offer actions
    path('offers/pending/', views.pending_offers, name='pending-offers'),
    path('offers/<int:offer_id>/accept/', views.accept_order_offer, name='accept-offer'),
    path('offers/<int:offer_id>/reject/', views.reject_order_offer, name='reject-offer'),

    # External scheduler
    path('offers/sweep/', views.sweep_offers, name='sweep-offers'),
]
