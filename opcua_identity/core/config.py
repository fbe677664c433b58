from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class UserCredentials(BaseModel):
    # protects both the keystore and its private-key entry
    user_pass: SecretStr = SecretStr("")


class KeyStoreSettings(BaseModel):
    file_name: str = "opcua-client.p12"
    cert_alias: str = "certificate"
    private_key_alias: str = "private-key"
    key_store_type: str = "PKCS12"


class CertificateInfo(BaseModel):
    organization: str = ""
    organizational_unit: str = ""
    locality_name: str = ""
    country_code: str = ""
    dns_name: str = ""
    ip_address: str = ""
    validity_days: int = Field(default=3650, gt=0)

    @field_validator("country_code")
    @classmethod
    def _two_letters(cls, v: str) -> str:
        v = v.strip().upper()
        if v and (len(v) != 2 or not v.isalpha()):
            raise ValueError("country_code must be a two-letter ISO code")
        return v


class OpcUaSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="OPCUA_",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: str = "OPC-UA Client"
    endpoint_url: str = "opc.tcp://localhost:4840"
    log_level: str = "INFO"

    security_policy: str = ""
    security_dir: str = ""
    lookup_timeout: float = Field(default=2.0, gt=0)

    user_credentials: UserCredentials = Field(default_factory=UserCredentials)
    key_store: KeyStoreSettings = Field(default_factory=KeyStoreSettings)
    certificate_info: CertificateInfo = Field(default_factory=CertificateInfo)
