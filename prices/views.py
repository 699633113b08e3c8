"""
Views: thin, no business logic (HackSoft Django Styleguide).

Responsibility: validate input, call service or selector, serialize output.
"""

from rest_framework import serializers, status
from rest_framework.response import Response
from rest_framework.views import APIView

from prices.models import FuelType, Schedule, Station
from prices.selectors import regional_summary_list
from prices.services import cheapest_fuel_list, price_history, station_detail, station_search

SCHEDULE_BOTH = "both"


# ---------------------------------------------------------------------------
# Shared output serializers
# ---------------------------------------------------------------------------


class CrowdAggregateOutputSerializer(serializers.Serializer):
    average = serializers.FloatField()
    count = serializers.IntegerField()
    min_price = serializers.FloatField()
    max_price = serializers.FloatField()
    last_report_at = serializers.DateTimeField()


class PriceEntryOutputSerializer(serializers.Serializer):
    fuel_type = serializers.CharField()
    schedule = serializers.CharField()
    price = serializers.FloatField()
    source = serializers.CharField()
    is_validated = serializers.BooleanField()
    valid_from = serializers.DateTimeField(allow_null=True)
    reported_at = serializers.DateTimeField(allow_null=True)
    age_days = serializers.FloatField(allow_null=True)
    adjusted_price = serializers.FloatField()
    adjusted_source = serializers.CharField()
    using_crowd_price = serializers.BooleanField()
    crowd = CrowdAggregateOutputSerializer(allow_null=True)


class StationOutputSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    external_id = serializers.CharField()
    name = serializers.CharField()
    company = serializers.CharField()
    address = serializers.CharField()
    locality = serializers.CharField()
    province = serializers.CharField()
    region = serializers.CharField()
    latitude = serializers.FloatField()
    longitude = serializers.FloatField()
    source = serializers.CharField()
    distance_km = serializers.FloatField(allow_null=True)
    updated_at = serializers.DateTimeField()
    prices = PriceEntryOutputSerializer(many=True)


class HistoryOutputSerializer(serializers.Serializer):
    fuel_type = serializers.CharField()
    schedule = serializers.CharField()
    price = serializers.FloatField()
    valid_from = serializers.DateTimeField()
    source = serializers.CharField()
    is_validated = serializers.BooleanField()


class PaginationOutputSerializer(serializers.Serializer):
    limit = serializers.IntegerField()
    offset = serializers.IntegerField()
    total = serializers.IntegerField()
    hasMore = serializers.BooleanField()


class CrowdSummaryOutputSerializer(serializers.Serializer):
    fuel_type = serializers.CharField()
    schedule = serializers.CharField(allow_null=True)
    merged = serializers.BooleanField()
    average = serializers.FloatField()
    count = serializers.IntegerField()
    min_price = serializers.FloatField()
    max_price = serializers.FloatField()
    last_report_at = serializers.DateTimeField()


class CrowdReportOutputSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    fuel_type = serializers.CharField()
    schedule = serializers.CharField()
    price = serializers.FloatField()
    notes = serializers.CharField(allow_blank=True)
    created_at = serializers.DateTimeField()


def _validate_center(attrs):
    if (attrs.get("lat") is None) != (attrs.get("lon") is None):
        raise serializers.ValidationError("lat and lon must be given together.")
    return attrs


# ---------------------------------------------------------------------------
# Stations
# ---------------------------------------------------------------------------


class StationSearchApi(APIView):
    """GET /api/stations/: stations near a point with consolidated prices."""

    class InputSerializer(serializers.Serializer):
        lat = serializers.FloatField(required=False, min_value=-90, max_value=90)
        lon = serializers.FloatField(required=False, min_value=-180, max_value=180)
        radius_km = serializers.FloatField(required=False)
        company = serializers.CharField(required=False, allow_blank=True)
        province = serializers.CharField(required=False, allow_blank=True)
        locality = serializers.CharField(required=False, allow_blank=True)
        fuel_type = serializers.ChoiceField(choices=FuelType.choices, required=False)
        schedule = serializers.ChoiceField(
            choices=[*Schedule.values, SCHEDULE_BOTH], default=Schedule.DAY
        )
        price_min = serializers.FloatField(required=False, min_value=0)
        price_max = serializers.FloatField(required=False, min_value=0)
        limit = serializers.IntegerField(required=False, default=50, min_value=1, max_value=200)
        offset = serializers.IntegerField(required=False, default=0, min_value=0)

        def validate_radius_km(self, value):
            if value <= 0:
                raise serializers.ValidationError("Radius must be positive.")
            return value

        def validate(self, attrs):
            attrs = _validate_center(attrs)
            price_min, price_max = attrs.get("price_min"), attrs.get("price_max")
            if price_min is not None and price_max is not None and price_min > price_max:
                raise serializers.ValidationError("price_min cannot exceed price_max.")
            return attrs

    class OutputSerializer(serializers.Serializer):
        stations = StationOutputSerializer(many=True)
        pagination = PaginationOutputSerializer()

    def get(self, request):
        input_ser = self.InputSerializer(data=request.query_params)
        input_ser.is_valid(raise_exception=True)

        data = dict(input_ser.validated_data)
        if data["schedule"] == SCHEDULE_BOTH:
            data["schedule"] = None

        result = station_search(**data)

        output_ser = self.OutputSerializer(result)
        return Response(output_ser.data)


class StationDetailApi(APIView):
    """GET /api/stations/<id>/: every price of one station plus crowd summary."""

    class OutputSerializer(StationOutputSerializer):
        tax_id = serializers.CharField()
        crowd_summary = CrowdSummaryOutputSerializer(many=True)
        crowd_reports = CrowdReportOutputSerializer(many=True)
        history = HistoryOutputSerializer(many=True)

    def get(self, request, station_id: int):
        try:
            result = station_detail(station_id=station_id)
        except Station.DoesNotExist as exc:
            return Response({"error": str(exc)}, status=status.HTTP_404_NOT_FOUND)

        output_ser = self.OutputSerializer(result)
        return Response(output_ser.data)


class StationHistoryApi(APIView):
    """GET /api/stations/<id>/history/: price snapshots of the last N days."""

    class InputSerializer(serializers.Serializer):
        fuel_type = serializers.ChoiceField(choices=FuelType.choices, required=False)
        schedule = serializers.ChoiceField(
            choices=[*Schedule.values, SCHEDULE_BOTH], default=SCHEDULE_BOTH
        )
        days = serializers.IntegerField(required=False, default=30, min_value=1, max_value=365)

    def get(self, request, station_id: int):
        input_ser = self.InputSerializer(data=request.query_params)
        input_ser.is_valid(raise_exception=True)
        data = input_ser.validated_data

        try:
            rows = price_history(
                station_id=station_id,
                fuel_type=data.get("fuel_type"),
                schedule=None if data["schedule"] == SCHEDULE_BOTH else data["schedule"],
                days=data["days"],
            )
        except Station.DoesNotExist as exc:
            return Response({"error": str(exc)}, status=status.HTTP_404_NOT_FOUND)

        return Response({"history": HistoryOutputSerializer(rows, many=True).data})


# ---------------------------------------------------------------------------
# Prices
# ---------------------------------------------------------------------------


class CheapestFuelApi(APIView):
    """GET /api/prices/cheapest/: cheapest current prices of one fuel type."""

    class InputSerializer(serializers.Serializer):
        fuel_type = serializers.ChoiceField(choices=FuelType.choices)
        lat = serializers.FloatField(required=False, min_value=-90, max_value=90)
        lon = serializers.FloatField(required=False, min_value=-180, max_value=180)
        radius_km = serializers.FloatField(required=False)
        schedule = serializers.ChoiceField(
            choices=[*Schedule.values, SCHEDULE_BOTH], default=Schedule.DAY
        )
        limit = serializers.IntegerField(required=False, default=10, min_value=1, max_value=50)

        def validate_radius_km(self, value):
            if value <= 0:
                raise serializers.ValidationError("Radius must be positive.")
            return value

        def validate(self, attrs):
            return _validate_center(attrs)

    class OutputSerializer(serializers.Serializer):
        station_id = serializers.IntegerField()
        station_name = serializers.CharField()
        company = serializers.CharField()
        address = serializers.CharField()
        locality = serializers.CharField()
        province = serializers.CharField()
        latitude = serializers.FloatField()
        longitude = serializers.FloatField()
        fuel_type = serializers.CharField()
        schedule = serializers.CharField()
        price = serializers.FloatField()
        source = serializers.CharField()
        valid_from = serializers.DateTimeField()
        distance_km = serializers.FloatField(allow_null=True)

    def get(self, request):
        input_ser = self.InputSerializer(data=request.query_params)
        input_ser.is_valid(raise_exception=True)
        data = dict(input_ser.validated_data)
        if data["schedule"] == SCHEDULE_BOTH:
            data["schedule"] = None

        rows = cheapest_fuel_list(**data)
        return Response({"results": self.OutputSerializer(rows, many=True).data})


class RegionalSummaryApi(APIView):
    """GET /api/summary/regions/: station count and average price per area."""

    class InputSerializer(serializers.Serializer):
        province = serializers.CharField(required=False, allow_blank=True)

    class OutputSerializer(serializers.Serializer):
        province = serializers.CharField()
        locality = serializers.CharField()
        company = serializers.CharField()
        fuel_type = serializers.CharField()
        station_count = serializers.IntegerField()
        average_price = serializers.FloatField()

    def get(self, request):
        input_ser = self.InputSerializer(data=request.query_params)
        input_ser.is_valid(raise_exception=True)

        rows = regional_summary_list(province=input_ser.validated_data.get("province") or None)
        return Response({"results": self.OutputSerializer(rows, many=True).data})
