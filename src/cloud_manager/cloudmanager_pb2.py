# -*- coding: utf-8 -*-
# Generated by the protocol buffer compiler.  DO NOT EDIT!
# source: cloud_manager/cloudmanager.proto
"""Generated protocol buffer code."""
from google.protobuf.internal import builder as _builder
from google.protobuf import descriptor as _descriptor
from google.protobuf import descriptor_pool as _descriptor_pool
from google.protobuf import symbol_database as _symbol_database
# @@protoc_insertion_point(imports)

_sym_db = _symbol_database.Default()




DESCRIPTOR = _descriptor_pool.Default().AddSerializedFile(b'\n cloud_manager/cloudmanager.proto\x12\x0f\x63loudmanager.v1\"j\n\x13\x42indIdentityRequest\x12\x11\n\tprincipal\x18\x01 \x01(\t\x12\x1c\n\x14kubernetes_namespace\x18\x02 \x01(\t\x12\"\n\x1akubernetes_service_account\x18\x03 \x01(\t\"\x16\n\x14\x42indIdentityResponse\"D\n\x18GetObjectChecksumRequest\x12\x13\n\x0b\x62ucket_name\x18\x01 \x01(\t\x12\x13\n\x0bobject_name\x18\x02 \x01(\t\"1\n\x19GetObjectChecksumResponse\x12\x14\n\x0cmd5_checksum\x18\x01 \x01(\t2\xd7\x01\n\x0c\x43loudManager\x12[\n\x0c\x42indIdentity\x12$.cloudmanager.v1.BindIdentityRequest\x1a%.cloudmanager.v1.BindIdentityResponse\x12j\n\x11GetObjectChecksum\x12).cloudmanager.v1.GetObjectChecksumRequest\x1a*.cloudmanager.v1.GetObjectChecksumResponseb\x06proto3')

_builder.BuildMessageAndEnumDescriptors(DESCRIPTOR, globals())
_builder.BuildTopDescriptorsAndMessages(DESCRIPTOR, 'cloud_manager.cloudmanager_pb2', globals())
if _descriptor._USE_C_DESCRIPTORS == False:

  DESCRIPTOR._options = None
  _BINDIDENTITYREQUEST._serialized_start=53
  _BINDIDENTITYREQUEST._serialized_end=159
  _BINDIDENTITYRESPONSE._serialized_start=161
  _BINDIDENTITYRESPONSE._serialized_end=183
  _GETOBJECTCHECKSUMREQUEST._serialized_start=185
  _GETOBJECTCHECKSUMREQUEST._serialized_end=253
  _GETOBJECTCHECKSUMRESPONSE._serialized_start=255
  _GETOBJECTCHECKSUMRESPONSE._serialized_end=304
  _CLOUDMANAGER._serialized_start=307
  _CLOUDMANAGER._serialized_end=522
# @@protoc_insertion_point(module_scope)
