"""
Widevine license protocol messages.

The schema is declared here and loaded into a private descriptor pool at
import time, so no generated _pb2 module is needed. Fields that are not
declared survive a parse/serialize cycle as unknown fields.
"""

from __future__ import annotations

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.internal.enum_type_wrapper import EnumTypeWrapper

PACKAGE = "easycdm.widevine"

_FDP = descriptor_pb2.FieldDescriptorProto
_SCALARS = {
    "bytes": _FDP.TYPE_BYTES,
    "string": _FDP.TYPE_STRING,
    "bool": _FDP.TYPE_BOOL,
    "int32": _FDP.TYPE_INT32,
    "uint32": _FDP.TYPE_UINT32,
    "int64": _FDP.TYPE_INT64,
    "uint64": _FDP.TYPE_UINT64,
}

# message name -> nested enums and (name, number, type[, repeated]) fields
_SCHEMA: dict[str, dict] = {
    "SignedMessage": {
        "enums": {
            "MessageType": [
                ("LICENSE_REQUEST", 1),
                ("LICENSE", 2),
                ("ERROR_RESPONSE", 3),
                ("SERVICE_CERTIFICATE_REQUEST", 4),
                ("SERVICE_CERTIFICATE", 5),
                ("SUB_LICENSE", 6),
                ("CAS_LICENSE_REQUEST", 7),
                ("CAS_LICENSE", 8),
                ("EXTERNAL_LICENSE_REQUEST", 9),
                ("EXTERNAL_LICENSE", 10),
            ],
            "SessionKeyType": [
                ("UNDEFINED", 0),
                ("WRAPPED_AES_KEY", 1),
                ("EPHEMERAL_ECC_PUBLIC_KEY", 2),
            ],
        },
        "fields": [
            ("type", 1, "SignedMessage.MessageType"),
            ("msg", 2, "bytes"),
            ("signature", 3, "bytes"),
            ("session_key", 4, "bytes"),
            ("remote_attestation", 5, "bytes"),
            ("session_key_type", 8, "SignedMessage.SessionKeyType"),
            ("oemcrypto_core_message", 9, "bytes"),
            ("using_secondary_key", 10, "bool"),
        ],
    },
    "LicenseRequest": {
        "enums": {
            "RequestType": [("NEW", 1), ("RENEWAL", 2), ("RELEASE", 3)],
            "ProtocolVersion": [
                ("VERSION_2_0", 20),
                ("VERSION_2_1", 21),
                ("VERSION_2_2", 22),
            ],
        },
        "fields": [
            ("client_id", 1, "ClientIdentification"),
            ("content_id", 2, "ContentIdentification"),
            ("type", 3, "LicenseRequest.RequestType"),
            ("request_time", 4, "int64"),
            ("key_control_nonce_deprecated", 5, "bytes"),
            ("protocol_version", 6, "LicenseRequest.ProtocolVersion"),
            ("key_control_nonce", 7, "uint32"),
            ("encrypted_client_id", 8, "EncryptedClientIdentification"),
        ],
    },
    "ContentIdentification": {
        "fields": [
            ("widevine_pssh_data", 1, "WidevinePsshContent"),
        ],
    },
    "WidevinePsshContent": {
        "fields": [
            ("pssh_data", 1, "bytes", True),
            ("license_type", 2, "LicenseIdentification.LicenseType"),
            ("request_id", 3, "bytes"),
        ],
    },
    "License": {
        "fields": [
            ("id", 1, "LicenseIdentification"),
            ("policy", 2, "Policy"),
            ("key", 3, "KeyContainer", True),
            ("license_start_time", 4, "int64"),
            ("remote_attestation_verified", 5, "bool"),
            ("provider_client_token", 6, "bytes"),
            ("protection_scheme", 7, "uint32"),
        ],
    },
    "LicenseIdentification": {
        "enums": {
            "LicenseType": [("STREAMING", 1), ("OFFLINE", 2), ("AUTOMATIC", 3)],
        },
        "fields": [
            ("request_id", 1, "bytes"),
            ("session_id", 2, "bytes"),
            ("purchase_id", 3, "bytes"),
            ("type", 4, "LicenseIdentification.LicenseType"),
            ("version", 5, "int32"),
            ("provider_session_token", 6, "bytes"),
        ],
    },
    "Policy": {
        "fields": [
            ("can_play", 1, "bool"),
            ("can_persist", 2, "bool"),
            ("can_renew", 3, "bool"),
            ("rental_duration_seconds", 4, "int64"),
            ("playback_duration_seconds", 5, "int64"),
            ("license_duration_seconds", 6, "int64"),
            ("renewal_recovery_duration_seconds", 7, "int64"),
            ("renewal_server_url", 8, "string"),
            ("renewal_delay_seconds", 9, "int64"),
            ("renewal_retry_interval_seconds", 10, "int64"),
            ("renew_with_usage", 11, "bool"),
        ],
    },
    "KeyContainer": {
        "enums": {
            "KeyType": [
                ("SIGNING", 1),
                ("CONTENT", 2),
                ("KEY_CONTROL", 3),
                ("OPERATOR_SESSION", 4),
                ("ENTITLEMENT", 5),
                ("OEM_CONTENT", 6),
            ],
            "SecurityLevel": [
                ("SW_SECURE_CRYPTO", 1),
                ("SW_SECURE_DECODE", 2),
                ("HW_SECURE_CRYPTO", 3),
                ("HW_SECURE_DECODE", 4),
                ("HW_SECURE_ALL", 5),
            ],
        },
        "fields": [
            ("id", 1, "bytes"),
            ("iv", 2, "bytes"),
            ("key", 3, "bytes"),
            ("type", 4, "KeyContainer.KeyType"),
            ("level", 5, "KeyContainer.SecurityLevel"),
            ("operator_session_key_permissions", 9, "OperatorSessionKeyPermissions"),
            ("anti_rollback_usage_table", 11, "bool"),
            ("track_label", 12, "string"),
        ],
    },
    "OperatorSessionKeyPermissions": {
        "fields": [
            ("allow_encrypt", 1, "bool"),
            ("allow_decrypt", 2, "bool"),
            ("allow_sign", 3, "bool"),
            ("allow_signature_verify", 4, "bool"),
        ],
    },
    "ClientIdentification": {
        "enums": {
            "TokenType": [
                ("KEYBOX", 0),
                ("DRM_DEVICE_CERTIFICATE", 1),
                ("REMOTE_ATTESTATION_CERTIFICATE", 2),
                ("OEM_DEVICE_CERTIFICATE", 3),
            ],
        },
        "fields": [
            ("type", 1, "ClientIdentification.TokenType"),
            ("token", 2, "bytes"),
            ("client_info", 3, "NameValue", True),
            ("provider_client_token", 4, "bytes"),
            ("license_counter", 5, "uint32"),
            ("vmp_data", 7, "bytes"),
        ],
    },
    "NameValue": {
        "fields": [
            ("name", 1, "string"),
            ("value", 2, "string"),
        ],
    },
    "EncryptedClientIdentification": {
        "fields": [
            ("provider_id", 1, "string"),
            ("service_certificate_serial_number", 2, "bytes"),
            ("encrypted_client_id", 3, "bytes"),
            ("encrypted_client_id_iv", 4, "bytes"),
            ("encrypted_privacy_key", 5, "bytes"),
        ],
    },
    "DrmCertificate": {
        "enums": {
            "Type": [
                ("ROOT", 0),
                ("DEVICE_MODEL", 1),
                ("DEVICE", 2),
                ("SERVICE", 3),
                ("PROVISIONER", 4),
            ],
        },
        "fields": [
            ("type", 1, "DrmCertificate.Type"),
            ("serial_number", 2, "bytes"),
            ("creation_time_seconds", 3, "uint32"),
            ("public_key", 4, "bytes"),
            ("system_id", 5, "uint32"),
            ("test_device_deprecated", 6, "bool"),
            ("provider_id", 7, "string"),
            ("expiration_time_seconds", 12, "uint32"),
        ],
    },
    "SignedDrmCertificate": {
        "enums": {
            "HashAlgorithm": [
                ("HASH_ALGORITHM_UNSPECIFIED", 0),
                ("HASH_ALGORITHM_SHA_1", 1),
                ("HASH_ALGORITHM_SHA_256", 2),
                ("HASH_ALGORITHM_SHA_384", 3),
            ],
        },
        "fields": [
            ("drm_certificate", 1, "bytes"),
            ("signature", 2, "bytes"),
            ("signer", 3, "SignedDrmCertificate"),
            ("hash_algorithm", 4, "SignedDrmCertificate.HashAlgorithm"),
        ],
    },
    "WidevinePsshData": {
        "enums": {
            "Algorithm": [("UNENCRYPTED", 0), ("AESCTR", 1)],
            "Type": [("SINGLE", 0), ("ENTITLEMENT", 1), ("ENTITLED_KEY", 2)],
        },
        "fields": [
            ("algorithm", 1, "WidevinePsshData.Algorithm"),
            ("key_ids", 2, "bytes", True),
            ("provider", 3, "string"),
            ("content_id", 4, "bytes"),
            ("track_type", 5, "string"),
            ("policy", 6, "string"),
            ("crypto_period_index", 7, "uint32"),
            ("grouped_license", 8, "bytes"),
            ("protection_scheme", 9, "uint32"),
            ("crypto_period_seconds", 10, "uint32"),
            ("type", 11, "WidevinePsshData.Type"),
            ("key_sequence", 12, "uint32"),
            ("group_ids", 13, "bytes", True),
            ("video_feature", 15, "string"),
        ],
    },
}

_ENUM_NAMES = {
    f"{message}.{enum}"
    for message, spec in _SCHEMA.items()
    for enum in spec.get("enums", {})
}


def _field(
    name: str, number: int, kind: str, repeated: bool = False  # noqa: FBT001, FBT002
) -> descriptor_pb2.FieldDescriptorProto:
    field = _FDP(
        name=name,
        number=number,
        label=_FDP.LABEL_REPEATED if repeated else _FDP.LABEL_OPTIONAL,
    )
    if kind in _SCALARS:
        field.type = _SCALARS[kind]
    elif kind in _ENUM_NAMES:
        field.type = _FDP.TYPE_ENUM
        field.type_name = f".{PACKAGE}.{kind}"
    else:
        field.type = _FDP.TYPE_MESSAGE
        field.type_name = f".{PACKAGE}.{kind}"
    return field


def _build_file() -> descriptor_pb2.FileDescriptorProto:
    file = descriptor_pb2.FileDescriptorProto(
        name="easycdm/widevine/license_protocol.proto",
        package=PACKAGE,
        syntax="proto2",
    )
    for name, spec in _SCHEMA.items():
        message = file.message_type.add(name=name)
        for enum_name, values in spec.get("enums", {}).items():
            enum = message.enum_type.add(name=enum_name)
            for value_name, number in values:
                enum.value.add(name=value_name, number=number)
        for field in spec["fields"]:
            message.field.append(_field(*field))
    return file


_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(_build_file().SerializeToString())


def _message(name: str) -> type:
    return message_factory.GetMessageClass(
        _pool.FindMessageTypeByName(f"{PACKAGE}.{name}")
    )


def _enum(name: str) -> EnumTypeWrapper:
    return EnumTypeWrapper(_pool.FindEnumTypeByName(f"{PACKAGE}.{name}"))


SignedMessage = _message("SignedMessage")
LicenseRequest = _message("LicenseRequest")
ContentIdentification = _message("ContentIdentification")
WidevinePsshContent = _message("WidevinePsshContent")
License = _message("License")
LicenseIdentification = _message("LicenseIdentification")
Policy = _message("Policy")
KeyContainer = _message("KeyContainer")
OperatorSessionKeyPermissions = _message("OperatorSessionKeyPermissions")
ClientIdentification = _message("ClientIdentification")
NameValue = _message("NameValue")
EncryptedClientIdentification = _message("EncryptedClientIdentification")
DrmCertificate = _message("DrmCertificate")
SignedDrmCertificate = _message("SignedDrmCertificate")
WidevinePsshData = _message("WidevinePsshData")

MessageType = _enum("SignedMessage.MessageType")
SessionKeyType = _enum("SignedMessage.SessionKeyType")
RequestType = _enum("LicenseRequest.RequestType")
ProtocolVersion = _enum("LicenseRequest.ProtocolVersion")
LicenseType = _enum("LicenseIdentification.LicenseType")
KeyType = _enum("KeyContainer.KeyType")
SecurityLevel = _enum("KeyContainer.SecurityLevel")
TokenType = _enum("ClientIdentification.TokenType")
CertificateType = _enum("DrmCertificate.Type")
HashAlgorithm = _enum("SignedDrmCertificate.HashAlgorithm")
