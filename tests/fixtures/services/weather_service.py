"""Weather service — tools, a UI-linked tool, a resource and an authenticated tool."""

from toolhost.core.decorators import authenticated, resource, service, tool, ui_app
from toolhost.core.field_constraints import constraint
from toolhost.core.secret_scope import get_secret, require_keys


class ForecastInput:
    city: str = constraint(description="City name", min_length=1, max_length=80)
    days: int = constraint(description="Days ahead", minimum=1, maximum=14, default=3)
    units: str = constraint(enum=["metric", "imperial"], optional=True)


class ForecastOutput:
    city: str
    days: int
    summary: str


@service
class WeatherService:
    @tool(
        description="Forecast for a city",
        input_class=ForecastInput,
        output_class=ForecastOutput,
    )
    @ui_app(component="ForecastCard", title="Forecast")
    async def getForecast(self, args: ForecastInput) -> dict:
        return {
            "city": args.city,
            "days": args.days,
            "summary": f"Sunny in {args.city}",
        }

    @authenticated(project_id="weather-pro", scopes=["forecast:read"])
    @tool(description="Forecast from the caller's own provider account", input_class=ForecastInput)
    @require_keys("WEATHER_API_KEY")
    async def premiumForecast(self, args: ForecastInput) -> dict:
        key = get_secret("WEATHER_API_KEY")
        return {"city": args.city, "keySuffix": key[-4:]}

    @resource(description="Known weather stations")
    def stations(self) -> list[dict]:
        return [{"id": "LIS", "city": "Lisbon"}, {"id": "OPO", "city": "Porto"}]
