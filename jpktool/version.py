APP_NAME = "JPKTool"
APP_VERSION = "1.0.0"
