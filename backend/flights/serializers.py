from rest_framework import serializers

TRAVEL_CLASSES = ["ECONOMY", "PREMIUM_ECONOMY", "BUSINESS", "FIRST"]
MIN_ADULTS = 1
MAX_ADULTS = 9


class FlightSearchSerializer(serializers.Serializer):
    origin = serializers.CharField(max_length=8)
    destination = serializers.CharField(max_length=8)
    departDate = serializers.DateField()
    returnDate = serializers.DateField(required=False, allow_null=True)
    adults = serializers.IntegerField(required=False, allow_null=True, default=MIN_ADULTS)
    travelClass = serializers.ChoiceField(choices=TRAVEL_CLASSES, required=False, default="ECONOMY")
    maxStops = serializers.ChoiceField(choices=[0, 1, 2], required=False, allow_null=True, default=None)

    def validate_origin(self, value):
        return value.strip().upper()

    def validate_destination(self, value):
        return value.strip().upper()

    def validate_adults(self, value):
        # Out-of-range passenger counts are clamped rather than rejected.
        return max(MIN_ADULTS, min(MAX_ADULTS, value or MIN_ADULTS))

    def validate_travelClass(self, value):
        return value or "ECONOMY"

    def validate(self, attrs):
        return_date = attrs.get("returnDate")
        if return_date and return_date < attrs["departDate"]:
            raise serializers.ValidationError({"returnDate": "Return date must be on or after depart date."})
        return attrs
