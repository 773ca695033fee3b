from memebattle import create_app, socketio
from memebattle.services.games.sweeper import start_sweeper

app = create_app()

if __name__ == '__main__':
    start_sweeper(app)
    # Use SocketIO server to enable websockets in dev
    socketio.run(app, debug=True)
