APP_ID = "de.vela.commander"
APP_NAME = "Vela"
VERSION = "0.4.0"
