# -*- coding: utf-8 -*-
# Generated by the protocol buffer compiler.  DO NOT EDIT!
# source: update_metadata.proto
"""Generated protocol buffer code."""
from google.protobuf import descriptor_pool as _descriptor_pool
from google.protobuf import symbol_database as _symbol_database
from google.protobuf.internal import builder as _builder

_sym_db = _symbol_database.Default()


_SERIALIZED_FILE = (
    b'\n\x15update_metadata.proto\x12\x16chromeos_update_engine\"1\n\x06Extent'
    b'\x12\x13\n\x0bstart_block\x18\x01 \x01(\x04\x12\x12\n\nnum_blocks\x18\x02'
    b' \x01(\x04\"\x9f\x01\n\nSignatures\x12@\n\nsignatures\x18\x01 \x03(\x0b2'
    b',.chromeos_update_engine.Signatures.Signature\x1aO\n\tSignature\x12\x13\n'
    b'\x07version\x18\x01 \x01(\rB\x02\x18\x01\x12\x0c\n\x04data\x18\x02 \x01(\x0c'
    b'\x12\x1f\n\x17unpadded_signature_size\x18\x03 \x01(\x07\"+\n\rPartitionInfo'
    b'\x12\x0c\n\x04size\x18\x01 \x01(\x04\x12\x0c\n\x04hash\x18\x02 \x01(\x0c\"'
    b'\xb0\x04\n\x10InstallOperation\x12;\n\x04type\x18\x01 \x02(\x0e2-.chromeos'
    b'_update_engine.InstallOperation.Type\x12\x13\n\x0bdata_offset\x18\x02 \x01'
    b'(\x04\x12\x13\n\x0bdata_length\x18\x03 \x01(\x04\x123\n\x0bsrc_extents\x18'
    b'\x04 \x03(\x0b2\x1e.chromeos_update_engine.Extent\x12\x12\n\nsrc_length\x18'
    b'\x05 \x01(\x04\x123\n\x0bdst_extents\x18\x06 \x03(\x0b2\x1e.chromeos_update'
    b'_engine.Extent\x12\x12\n\ndst_length\x18\x07 \x01(\x04\x12\x18\n\x10data_sha'
    b'256_hash\x18\x08 \x01(\x0c\x12\x17\n\x0fsrc_sha256_hash\x18\t \x01(\x0c\"\xef'
    b'\x01\n\x04Type\x12\x0b\n\x07REPLACE\x10\x00\x12\x0e\n\nREPLACE_BZ\x10\x01'
    b'\x12\x0c\n\x04MOVE\x10\x02\x1a\x02\x08\x01\x12\x0e\n\x06BSDIFF\x10\x03\x1a'
    b'\x02\x08\x01\x12\x0f\n\x0bSOURCE_COPY\x10\x04\x12\x11\n\rSOURCE_BSDIFF\x10'
    b'\x05\x12\x0e\n\nREPLACE_XZ\x10\x08\x12\x08\n\x04ZERO\x10\x06\x12\x0b\n\x07'
    b'DISCARD\x10\x07\x12\x11\n\rBROTLI_BSDIFF\x10\n\x12\x0c\n\x08PUFFDIFF\x10\t'
    b'\x12\x0c\n\x08ZUCCHINI\x10\x0b\x12\x12\n\x0eLZ4DIFF_BSDIFF\x10\x0c\x12\x14'
    b'\n\x10LZ4DIFF_PUFFDIFF\x10\r\x12\x08\n\x04ZSTD\x10\x0e\"\x81\x02\n\x11Cow'
    b'MergeOperation\x12<\n\x04type\x18\x01 \x01(\x0e2..chromeos_update_engine.'
    b'CowMergeOperation.Type\x122\n\nsrc_extent\x18\x02 \x01(\x0b2\x1e.chromeos'
    b'_update_engine.Extent\x122\n\ndst_extent\x18\x03 \x01(\x0b2\x1e.chromeos_'
    b'update_engine.Extent\x12\x12\n\nsrc_offset\x18\x04 \x01(\r\"2\n\x04Type\x12'
    b'\x0c\n\x08COW_COPY\x10\x00\x12\x0b\n\x07COW_XOR\x10\x01\x12\x0f\n\x0bCOW_'
    b'REPLACE\x10\x02\"\xe7\x06\n\x0fPartitionUpdate\x12\x16\n\x0epartition_name'
    b'\x18\x01 \x02(\t\x12\x17\n\x0frun_postinstall\x18\x02 \x01(\x08\x12\x18\n'
    b'\x10postinstall_path\x18\x03 \x01(\t\x12\x17\n\x0ffilesystem_type\x18\x04'
    b' \x01(\t\x12M\n\x17new_partition_signature\x18\x05 \x03(\x0b2,.chromeos_'
    b'update_engine.Signatures.Signature\x12A\n\x12old_partition_info\x18\x06 '
    b'\x01(\x0b2%.chromeos_update_engine.PartitionInfo\x12A\n\x12new_partition_'
    b'info\x18\x07 \x01(\x0b2%.chromeos_update_engine.PartitionInfo\x12<\n\n'
    b'operations\x18\x08 \x03(\x0b2(.chromeos_update_engine.InstallOperation'
    b'\x12\x1c\n\x14postinstall_optional\x18\t \x01(\x08\x12=\n\x15hash_tree_data'
    b'_extent\x18\n \x01(\x0b2\x1e.chromeos_update_engine.Extent\x128\n\x10hash'
    b'_tree_extent\x18\x0b \x01(\x0b2\x1e.chromeos_update_engine.Extent\x12\x1b'
    b'\n\x13hash_tree_algorithm\x18\x0c \x01(\t\x12\x16\n\x0ehash_tree_salt\x18'
    b'\r \x01(\x0c\x127\n\x0ffec_data_extent\x18\x0e \x01(\x0b2\x1e.chromeos_'
    b'update_engine.Extent\x122\n\nfec_extent\x18\x0f \x01(\x0b2\x1e.chromeos_'
    b'update_engine.Extent\x12\x14\n\tfec_roots\x18\x10 \x01(\r:\x012\x12\x0f\n'
    b'\x07version\x18\x11 \x01(\t\x12C\n\x10merge_operations\x18\x12 \x03(\x0b2)'
    b'.chromeos_update_engine.CowMergeOperation\x12\x19\n\x11estimate_cow_size'
    b'\x18\x13 \x01(\x04\x12\x1d\n\x15estimate_op_count_max\x18\x14 \x01(\x04\"L'
    b'\n\x15DynamicPartitionGroup\x12\x0c\n\x04name\x18\x01 \x02(\t\x12\x0c\n\x04'
    b'size\x18\x02 \x01(\x04\x12\x17\n\x0fpartition_names\x18\x03 \x03(\t\"8\n\x0e'
    b'VABCFeatureSet\x12\x10\n\x08threaded\x18\x01 \x01(\x08\x12\x14\n\x0cbatch_'
    b'writes\x18\x02 \x01(\x08\"\x9c\x02\n\x18DynamicPartitionMetadata\x12=\n\x06'
    b'groups\x18\x01 \x03(\x0b2-.chromeos_update_engine.DynamicPartitionGroup'
    b'\x12\x18\n\x10snapshot_enabled\x18\x02 \x01(\x08\x12\x14\n\x0cvabc_enabled'
    b'\x18\x03 \x01(\x08\x12\x1e\n\x16vabc_compression_param\x18\x04 \x01(\t\x12'
    b'\x13\n\x0bcow_version\x18\x05 \x01(\r\x12@\n\x10vabc_feature_set\x18\x06 '
    b'\x01(\x0b2&.chromeos_update_engine.VABCFeatureSet\x12\x1a\n\x12compression'
    b'_factor\x18\x07 \x01(\x04\"c\n\x08ApexInfo\x12\x14\n\x0cpackage_name\x18'
    b'\x01 \x01(\t\x12\x0f\n\x07version\x18\x02 \x01(\x03\x12\x15\n\ris_compressed'
    b'\x18\x03 \x01(\x08\x12\x19\n\x11decompressed_size\x18\x04 \x01(\x03\"C\n\x0c'
    b'ApexMetadata\x123\n\tapex_info\x18\x01 \x03(\x0b2 .chromeos_update_engine.'
    b'ApexInfo\"\xc3\x03\n\x14DeltaArchiveManifest\x12\x18\n\nblock_size\x18\x03'
    b' \x01(\r:\x044096\x12\x19\n\x11signatures_offset\x18\x04 \x01(\x04\x12\x17'
    b'\n\x0fsignatures_size\x18\x05 \x01(\x04\x12\x18\n\rminor_version\x18\x0c '
    b'\x01(\r:\x010\x12;\n\npartitions\x18\r \x03(\x0b2\'.chromeos_update_engine.'
    b'PartitionUpdate\x12\x15\n\rmax_timestamp\x18\x0e \x01(\x03\x12T\n\x1adynamic'
    b'_partition_metadata\x18\x0f \x01(\x0b20.chromeos_update_engine.Dynamic'
    b'PartitionMetadata\x12\x16\n\x0epartial_update\x18\x10 \x01(\x08\x123\n\t'
    b'apex_info\x18\x11 \x03(\x0b2 .chromeos_update_engine.ApexInfo\x12\x1c\n\x14'
    b'security_patch_level\x18\x12 \x01(\tJ\x04\x08\x01\x10\x02J\x04\x08\x02\x10'
    b'\x03J\x04\x08\x06\x10\x07J\x04\x08\x07\x10\x08J\x04\x08\x08\x10\tJ\x04\x08'
    b'\t\x10\nJ\x04\x08\n\x10\x0bJ\x04\x08\x0b\x10\x0c'
)

DESCRIPTOR = _descriptor_pool.Default().AddSerializedFile(_SERIALIZED_FILE)

_globals = globals()
_builder.BuildMessageAndEnumDescriptors(DESCRIPTOR, _globals)
_builder.BuildTopDescriptorsAndMessages(DESCRIPTOR, 'update_metadata_pb2', _globals)
