# TeamSpeak 3 ServerQuery constants and bot defaults

DEFAULT_QUERY_PORT = 10011
DEFAULT_SERVER_PORT = 9987

# ServerQuery answers every command with a final "error id=N msg=..." line.
ERROR_OK = 0
ERROR_NICKNAME_IN_USE = 513
ERROR_DATABASE_EMPTY_RESULT = 1281

# TextMessageTargetMode
TARGETMODE_CLIENT = 1
TARGETMODE_CHANNEL = 2
TARGETMODE_SERVER = 3

# client_type
CLIENT_TYPE_VOICE = 0
CLIENT_TYPE_QUERY = 1

# Notification event names (servernotifyregister event=...)
NOTIFY_EVENTS = ("server", "textserver", "textchannel", "textprivate")

# Notification line prefixes
N_TEXT_MESSAGE = "notifytextmessage"
N_CLIENT_ENTER = "notifycliententerview"
N_CLIENT_LEFT = "notifyclientleftview"

# Moderation defaults
HOLDING_CHANNEL = "Lobby"
PROTECT_PREFIX = "!stop"
PROTECT_HOURS = 3.0

IDLE_MESSAGE = "Ey {nickname}, idle mal hier nicht rum. Ab in die Lobby mit dir!"
PROTECT_REPLY = "Na gut, ich move dich die nächsten drei Stunden nicht mehr :("

KEEPALIVE_S = 60.0
QUERY_TIMEOUT_S = 10.0
