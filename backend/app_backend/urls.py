from django.contrib import admin
from django.urls import path, include

from offers.urls import dashboard_urlpatterns
from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check), # Health check endpoint

    # Authentication endpoints (at /api/auth/)
    path('api/auth/', include('accounts.urls')),  # register, login, refresh, profile, password

    # Offer endpoints (at /api/offers/)
    path('api/offers/', include('offers.urls')),

    # Dashboards (at /api/dashboard/)
    path('api/dashboard/', include((dashboard_urlpatterns, 'dashboard'))),
]
