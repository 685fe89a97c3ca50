import atexit

from streamscout_app import create_app
from streamscout_app.routes import EXTENSION_KEY

app = create_app()
atexit.register(app.extensions[EXTENSION_KEY].close)

if __name__ == '__main__':
    # Host, port and debug come from FLASK_HOST / FLASK_PORT / FLASK_DEBUG via Settings
    host = app.config.get('HOST', '127.0.0.1')
    port = app.config.get('PORT', 5000)
    debug = app.config.get('DEBUG', False)

    print("=" * 60)
    print("  StreamScout v1.0 - Search & Availability API")
    print("=" * 60)
    print(f"\n🚀 Listening on http://{host}:{port}")

    app.run(host=host, port=port, debug=debug)
