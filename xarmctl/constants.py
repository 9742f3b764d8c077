"""
Device identity, wire commands and joint domains for the xArm controller board.

Also imported by cli.py to keep a single source of truth for defaults.
"""

# USB HID identity of the controller board
VENDOR_ID = 0x0483
PRODUCT_ID = 0x5750

# Bluetooth LE identity
BLE_DEVICE_NAME = "xArm"
BLE_SERVICE_UUID = "0000ffe0-0000-1000-8000-00805f9b34fb"
BLE_CHARACTERISTIC_UUID = "0000ffe1-0000-1000-8000-00805f9b34fb"
BLE_SCAN_TIMEOUT = 5.0          # seconds
BLE_NOTIFY_TIMEOUT = 1.0        # seconds

HID_READ_SIZE = 64
HID_READ_TIMEOUT_MS = 1000

SIGNATURE = 0x55
REPORT_ID = 0x00

# Commands
CMD_SERVO_MOVE = 0x03
CMD_GET_BATTERY_VOLTAGE = 0x0F
CMD_SERVO_STOP = 0x14
CMD_GET_SERVO_POSITION = 0x15

# Joint domains (degrees)
MIN_ANGLE = -125.0
MAX_ANGLE = 125.0
MIN_ELEVATION = -60.0
MAX_ELEVATION = 90.0

# Raw actuator units
RAW_MIN = 0
RAW_MAX = 1000
ANGLE_SPAN = MAX_ANGLE - MIN_ANGLE

# Movement defaults
DEFAULT_TOLERANCE = 1.0         # degrees
DEFAULT_MS_PER_DEGREE = 5.0
DEFAULT_MIN_DURATION_MS = 20
DEFAULT_MAX_RETRIES = 5
