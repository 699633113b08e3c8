from django.urls import path

from prices.views import (
    CheapestFuelApi,
    RegionalSummaryApi,
    StationDetailApi,
    StationHistoryApi,
    StationSearchApi,
)

app_name = "prices"

urlpatterns = [
    path("stations/", StationSearchApi.as_view(), name="station-search"),
    path("stations/<int:station_id>/", StationDetailApi.as_view(), name="station-detail"),
    path(
        "stations/<int:station_id>/history/",
        StationHistoryApi.as_view(),
        name="station-history",
    ),
    path("prices/cheapest/", CheapestFuelApi.as_view(), name="cheapest-fuel"),
    path("summary/regions/", RegionalSummaryApi.as_view(), name="regional-summary"),
]
