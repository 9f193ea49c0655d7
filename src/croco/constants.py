"""Shared constants for the Croco Cartridge protocol.

Opcodes, frame limits and bank geometry as implemented by the cartridge
firmware.  All multi-byte header fields are big-endian on the wire unless
noted otherwise.
"""

# =========================================================================
# USB identity
# =========================================================================

CROCO_VID = 0x2E8A
CROCO_PID = 0x107F

VENDOR_INTERFACE_CLASS = 0xFF

# Bulk transfer timeout (ms) for both directions
DEFAULT_TIMEOUT_MS = 5000

# Class request the firmware waits for before it answers on the bulk pipe
# (CDC SET_CONTROL_LINE_STATE, DTR set)
LINE_STATE_REQUEST = 0x22
LINE_STATE_VALUE = 0x01

# =========================================================================
# Opcodes
# =========================================================================

CMD_ROM_UTILIZATION = 0x01
CMD_REQUEST_ROM_UPLOAD = 0x02
CMD_ROM_CHUNK = 0x03
CMD_ROM_INFO = 0x04
CMD_DELETE_ROM = 0x05
CMD_REQUEST_SAVE_DOWNLOAD = 0x06
CMD_SAVE_CHUNK_READ = 0x07
CMD_REQUEST_SAVE_UPLOAD = 0x08
CMD_SAVE_CHUNK_WRITE = 0x09
CMD_SERIAL_ID = 0xFD
CMD_DEVICE_INFO = 0xFE

OPCODE_NAMES = {
    CMD_ROM_UTILIZATION: "rom-utilization",
    CMD_REQUEST_ROM_UPLOAD: "request-rom-upload",
    CMD_ROM_CHUNK: "rom-chunk",
    CMD_ROM_INFO: "rom-info",
    CMD_DELETE_ROM: "delete-rom",
    CMD_REQUEST_SAVE_DOWNLOAD: "request-save-download",
    CMD_SAVE_CHUNK_READ: "save-chunk-read",
    CMD_REQUEST_SAVE_UPLOAD: "request-save-upload",
    CMD_SAVE_CHUNK_WRITE: "save-chunk-write",
    CMD_SERIAL_ID: "serial-id",
    CMD_DEVICE_INFO: "device-info",
}

# =========================================================================
# Frame limits
# =========================================================================

MAX_COMMAND_FRAME = 65       # 1 opcode + 64 payload
MAX_PAYLOAD = MAX_COMMAND_FRAME - 1
MAX_RESPONSE_READ = 128      # read window incl. echo byte
MAX_RESPONSE_DATA = MAX_RESPONSE_READ - 1

STATUS_OK = 0x00

# =========================================================================
# Bank geometry
# =========================================================================

CHUNK_SIZE = 32
CHUNK_HEADER_SIZE = 4        # bank BE16 + chunk BE16
CHUNK_RESPONSE_SIZE = CHUNK_HEADER_SIZE + CHUNK_SIZE

ROM_BANK_SIZE = 16384
SRAM_BANK_SIZE = 8192

# Flash capacity reported next to the utilization counter
MAX_ROM_BANKS = 888

ROM_NAME_SIZE = 17

# Upload handshake trailer reserved for a speed-mode field; firmware only
# ever sees this value.
SPEED_SWITCH_SENTINEL = 0xFFFF

# =========================================================================
# Response minimums
# =========================================================================

UTILIZATION_MIN_LEN = 5
UTILIZATION_CAPACITY = 10
ROM_INFO_MIN_LEN = 20
ROM_INFO_CAPACITY = 25
DEVICE_INFO_MIN_LEN = 11
DEVICE_INFO_CAPACITY = 15
SERIAL_ID_LEN = 8
SERIAL_ID_CAPACITY = 10

# udev rule granting non-root access to the cartridge
UDEV_RULES_PATH = "/etc/udev/rules.d/99-croco-cartridge.rules"


def opcode_name(opcode: int) -> str:
    """Human-readable opcode label for logs and error messages."""
    return OPCODE_NAMES.get(opcode, f"0x{opcode:02x}")
