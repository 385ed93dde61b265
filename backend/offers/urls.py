from django.urls import path
from . import views

app_name = 'offers'

urlpatterns = [
    path('', views.offer_collection, name='offer-list'),
    path('nearby/', views.nearby_offers, name='nearby-offers'),
    path('<int:offer_id>/', views.offer_detail, name='offer-detail'),

    # Lifecycle actions
    path('<int:offer_id>/accept/', views.accept_offer, name='accept-offer'),
    path('<int:offer_id>/status/', views.update_offer_status, name='offer-status'),
    path('<int:offer_id>/pickup/', views.mark_picked_up, name='offer-pickup'),
    path('<int:offer_id>/in-transit/', views.mark_in_transit, name='offer-in-transit'),
    path('<int:offer_id>/delivered/', views.mark_delivered, name='offer-delivered'),
    path('<int:offer_id>/complete/', views.mark_completed, name='offer-complete'),
    path('<int:offer_id>/cancel/', views.cancel_offer, name='cancel-offer'),
    path('<int:offer_id>/history/', views.offer_history, name='offer-history'),
]

dashboard_urlpatterns = [
    path('business/', views.business_dashboard, name='business-dashboard'),
    path('rider/', views.rider_dashboard, name='rider-dashboard'),
]
