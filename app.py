from src.geo_attendance.geo_attendance.main import create_app

app = create_app()

if __name__ == "__main__":
    # threaded is fine: every request hands its work to the shared event loop
    app.run(debug=app.config["DEBUG"], threaded=True)
