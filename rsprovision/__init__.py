"""rsprovision — librealsense2 SDK provisioner for Debian dev containers."""

__version__ = "0.1.0"
