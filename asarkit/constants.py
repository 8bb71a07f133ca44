import struct


# Framing (Chromium pickle layout, little endian)
SIZE_PICKLE_PAYLOAD = 4  # the size pickle always carries a single uint32
FRAMING_STRUCT = struct.Struct("<IIII")  # marker, header_size, payload_size, json_length
FRAMING_SIZE = FRAMING_STRUCT.size  # 16 bytes before the header text
HEADER_PICKLE_FIELDS = 8  # payload_size + json_length inside the header pickle

HEADER_ALIGNMENT = 8
PAD_BYTE = b"\x00"

# Header schema keys
KEY_FILES = "files"
KEY_SIZE = "size"
KEY_OFFSET = "offset"

# Largest integer a JavaScript reader can represent exactly
MAX_SAFE_INTEGER = 9_007_199_254_740_991

# Safety bound on the header region to avoid huge allocations on bad input
MAX_HEADER_SIZE = 128 * 1024 * 1024
