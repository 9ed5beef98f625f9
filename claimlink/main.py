from .app import create_app
from .common.config import settings

app = create_app()

if __name__ == "__main__":
    # Development server; deployments run `hypercorn claimlink.main:app`
    app.run(host=settings.APP_HOST, port=settings.APP_PORT, debug=settings.is_development())
