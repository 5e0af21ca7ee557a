"""Socket.IO event names shared with the web client."""

# Client -> server
SET_NAME = "setName"
CREATE_ROOM = "createRoom"
JOIN_ROOM = "joinRoom"
LEAVE_ROOM = "leaveRoom"
START_GAME = "startGame"
PLACE_GAME = "placeGame"
UPDATE_SETTINGS = "updateSettings"
REMATCH = "rematch"

# Server -> client
NAME_SET = "nameSet"
ROOM_CREATED = "roomCreated"
ROOM_JOINED = "roomJoined"
ROOM_UPDATED = "roomUpdated"
GAME_STARTED = "gameStarted"
GAME_PLACED = "gamePlaced"
GAME_ENDED = "gameEnded"
LEFT_ROOM = "leftRoom"
PLAYER_LEFT = "playerLeft"
ERROR = "error"
