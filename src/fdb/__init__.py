"""fdb - quick database cluster deployment via kbcli and kubectl."""

__version__ = "0.1.0"
