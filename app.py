import logging
import os

from flask import Flask, Response, abort, jsonify, redirect, render_template, request, url_for

from screen import (
    BUSY_IGNORE,
    Error,
    Loaded,
    Screen,
    format_clock,
    format_description,
    format_temperature,
    visibility_km,
)
from weather_client import (
    DEFAULT_BASE_URL,
    DEFAULT_ICON_BASE_URL,
    DecodeError,
    InvalidInput,
    NetworkError,
    WeatherClient,
)

logger = logging.getLogger(__name__)

VARIANTS = ("classic", "beta")


def load_config():
    return {
        "OPENWEATHER_API_KEY": os.environ.get("OPENWEATHER_API_KEY"),
        "OPENWEATHER_BASE": os.environ.get("OPENWEATHER_BASE", DEFAULT_BASE_URL),
        "OPENWEATHER_ICON_BASE": os.environ.get("OPENWEATHER_ICON_BASE", DEFAULT_ICON_BASE_URL),
        "WEATHER_HTTP_TIMEOUT": float(os.environ.get("WEATHER_HTTP_TIMEOUT", "10")),
        "WEATHER_SCREEN_VARIANT": os.environ.get("WEATHER_SCREEN_VARIANT", "beta"),
        "WEATHER_BUSY_POLICY": os.environ.get("WEATHER_BUSY_POLICY", BUSY_IGNORE),
    }


def create_app(config=None, executor=None):
    app = Flask(__name__, template_folder="templates")
    app.config.update(load_config())
    if config:
        app.config.update(config)

    if app.config["WEATHER_SCREEN_VARIANT"] not in VARIANTS:
        raise ValueError(f"WEATHER_SCREEN_VARIANT must be one of {VARIANTS}")

    client = WeatherClient(
        app.config["OPENWEATHER_API_KEY"],
        base_url=app.config["OPENWEATHER_BASE"],
        icon_base_url=app.config["OPENWEATHER_ICON_BASE"],
        timeout=app.config["WEATHER_HTTP_TIMEOUT"],
    )
    app.extensions["weather_screen"] = Screen(
        client, executor=executor, busy_policy=app.config["WEATHER_BUSY_POLICY"])

    app.jinja_env.filters["temperature"] = format_temperature
    app.jinja_env.filters["description"] = format_description
    app.jinja_env.filters["clock"] = format_clock
    app.jinja_env.filters["km"] = visibility_km

    register_routes(app)
    return app


def get_screen(app) -> Screen:
    return app.extensions["weather_screen"]


def register_routes(app):
    @app.route("/")
    def index():
        snap = get_screen(app).snapshot()
        return render_template("index.html", snap=snap, kind=type(snap.state).__name__.lower(),
                               variant=app.config["WEATHER_SCREEN_VARIANT"])

    @app.route("/search", methods=["POST"])
    def search():
        get_screen(app).submit(request.form.get("city", ""))
        return redirect(url_for("index"))

    @app.route("/details", methods=["POST"])
    def details():
        get_screen(app).toggle_details()
        return redirect(url_for("index"))

    @app.route("/icon")
    def icon():
        state = get_screen(app).snapshot().state
        if not isinstance(state, Loaded) or state.icon is None:
            abort(404)
        return Response(state.icon, mimetype="image/png")

    @app.route("/api/state")
    def api_state():
        snap = get_screen(app).snapshot()
        body = {"revision": snap.revision, "city": snap.city, "busy": snap.busy,
                "state": type(snap.state).__name__.lower()}
        if isinstance(snap.state, Error):
            body["error"] = snap.state.message
        if isinstance(snap.state, Loaded):
            summary = snap.state.summary
            body["summary"] = {
                "name": summary.city_name,
                "temperature": format_temperature(summary.temperature_celsius),
                "description": format_description(summary.condition_description),
                "icon": summary.icon_code,
                "has_icon": snap.state.icon is not None,
            }
            body["details"] = {"panel": snap.panel, "label": snap.details_label}
            if snap.detail is not None:
                body["details"].update(_detail_json(snap.detail))
        return jsonify(body)

    @app.route("/api/weather")
    def get_weather():
        city = request.args.get("city", "London")
        client = get_screen(app).client
        if not client.api_key:
            return jsonify({"error": "OPENWEATHER_API_KEY not set on server"}), 500

        try:
            summary = client.fetch_summary(city)
        except (InvalidInput, NetworkError, DecodeError) as e:
            logger.warning("Weather lookup for %r failed: %s", city, e)
            return _lookup_error(e)
        return jsonify({
            "name": summary.city_name,
            "temp": summary.temperature_celsius,
            "description": summary.condition_description,
            "icon": summary.icon_code,
            "icon_url": client.icon_url(summary.icon_code),
        })


def _lookup_error(err):
    if isinstance(err, InvalidInput):
        return jsonify({"error": "invalid city", "details": str(err)}), 400
    if isinstance(err, NetworkError):
        return jsonify({"error": "failed to fetch from OpenWeatherMap", "details": str(err)}), 502
    return jsonify({"error": "unexpected response from OpenWeatherMap", "details": str(err)}), 500


def _detail_json(detail):
    return {
        "humidity": detail.humidity_percent,
        "wind_speed": detail.wind_speed_mps,
        "pressure": detail.pressure_hpa,
        "visibility_km": visibility_km(detail.visibility_meters),
        "sunrise": format_clock(detail.sunrise_epoch_seconds),
        "sunset": format_clock(detail.sunset_epoch_seconds),
    }


if __name__ == "__main__":
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"),
                        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    app = create_app()
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
