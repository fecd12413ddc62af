"""
Columnar data files: encoding record batches to Parquet and decoding them back.
"""

from tablestore.columnar.decoder import ColumnarDecoder, decode_file, normalize_value
from tablestore.columnar.encoder import (
    ColumnarEncoder,
    EncodedFile,
    coerce_value,
    encode_batch,
    new_data_file_name,
)

__all__ = [
    "ColumnarEncoder",
    "ColumnarDecoder",
    "EncodedFile",
    "encode_batch",
    "decode_file",
    "coerce_value",
    "normalize_value",
    "new_data_file_name",
]
