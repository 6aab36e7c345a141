from django.urls import path

from modules.core.views import health_check

# Unversioned: probed by the load balancer, not by API clients.
urlpatterns = [
    path("health", health_check, name="health_check"),
]
