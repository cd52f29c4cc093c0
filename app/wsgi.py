import os

from app.thrifter import create_app

app = create_app()

# Local dev only: `python -m app.wsgi`
if __name__ == "__main__":
    port = int(os.getenv("PORT", "5000"))
    app.run(host="0.0.0.0", port=port, debug=app.config.get("ENV") == "development")
