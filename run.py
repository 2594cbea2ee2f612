from wishshare import create_app, db, socketio
from dotenv import load_dotenv
from waitress import serve
import os

load_dotenv()

app = create_app()
mode = os.getenv('APP_MODE', 'development')

if __name__ == '__main__':
    with app.app_context():
        db.create_all()
    port = int(os.getenv("PORT", 8000))
    if mode == 'development':
        socketio.run(app, host='0.0.0.0', port=port, debug=True, allow_unsafe_werkzeug=True)
    else:
        # Socket.IO falls back to long-polling under waitress
        serve(app, host='0.0.0.0', port=port, threads=8)
