"""Constants shared by the sync, GATT and push components."""

DEFAULT_REMOTE_URL = (
    "https://raw.githubusercontent.com/VisTechProjects/parking_pass_display/permit/permit.json"
)

REQUEST_HEADERS = {
    "Accept": "application/json",
    "Cache-Control": "no-cache",
    "User-Agent": "parkingpermitsync",
}

# Peripheral role: the display reads the permit from us.
PERMIT_SERVICE_UUID = "0000ff00-0000-1000-8000-00805f9b34fb"
PERMIT_CHAR_UUID = "0000ff01-0000-1000-8000-00805f9b34fb"
SYNC_TYPE_CHAR_UUID = "0000ff02-0000-1000-8000-00805f9b34fb"

# Central role: we command the display to re-read.
DISPLAY_SERVICE_UUID = "0000ff10-0000-1000-8000-00805f9b34fb"
COMMAND_CHAR_UUID = "0000ff11-0000-1000-8000-00805f9b34fb"

CMD_SYNC = b"SYNC"
CMD_FORCE = b"FORCE"

MAX_CHUNK_SIZE = 512
SCAN_TIMEOUT = 10.0
CONNECT_TIMEOUT = 20.0

DEFAULT_DEVICE_NAME = "ParkingPermit"
DEFAULT_ADAPTER = "hci0"
DEFAULT_SYNC_HOUR = 3

PERMIT_DATE_FORMAT = "%b %d, %Y: %H:%M"
PERMIT_DAY_FORMAT = "%b %d, %Y"

PENDING_PERMIT_NUMBER = "Pending"
EXPIRY_WARNING_DAYS = 2
PENDING_PERMIT_DAYS = 7

# Seeded into the store on first run so price deltas have a baseline.
SEED_PREVIOUS_PERMIT = {
    "permitNumber": "T6105427",
    "plateNumber": "CFTK291",
    "vehicleName": "",
    "validFrom": "Dec 16, 2025: 00:00",
    "validTo": "Dec 23, 2025: 23:59",
    "barcodeValue": "6105427",
    "barcodeLabel": "T6105427",
    "amountPaid": "$48.00",
}
