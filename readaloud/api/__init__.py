"""Remote text-to-speech service clients and voice catalog."""
