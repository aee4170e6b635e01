"""
URL configuration for the Django application.

The chat core is reached over WebSockets (see chat/routing.py); request
routing for an HTTP API is provided by the embedding service, so no HTTP
routes are registered here.

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

urlpatterns = []
