from django.conf import settings
from django.urls import include, path

urlpatterns = [
    path("api/", include("prices.urls")),
]

if settings.DEBUG:
    urlpatterns.append(path("silk/", include("silk.urls", namespace="silk")))
