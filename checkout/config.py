"""
Checkout - Configurações da Aplicação
"""

from decimal import Decimal
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configurações do sistema carregadas do ambiente"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Database
    DB_HOST: str = "localhost"
    DB_PORT: int = 3306
    DB_NAME: str = "checkout"
    DB_USER: str = "checkout"
    DB_PASSWORD: str = "checkout"
    DB_URL: Optional[str] = None  # ex.: sqlite:///./checkout.db

    # JWT
    JWT_SECRET_KEY: str = "checkout-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    API_DEBUG: bool = False

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Logging
    LOG_LEVEL: str = "INFO"

    # PIX (recebedor)
    PIX_RECEIVER_KEY: str = "pagamentos@checkout.com.br"
    PIX_MERCHANT_NAME: str = "CHECKOUT PAGAMENTOS"
    PIX_MERCHANT_CITY: str = "SAO PAULO"
    PIX_TTL_MINUTES: int = 30

    # Boleto (dados de cobrança)
    BANK_SLIP_BANK_CODE: str = "001"
    BANK_SLIP_AGENCY: str = "1234"
    BANK_SLIP_ACCOUNT: str = "56789"
    BANK_SLIP_WALLET: str = "17"
    BANK_SLIP_BENEFICIARY_NAME: str = "Checkout Pagamentos LTDA"
    BANK_SLIP_BENEFICIARY_DOCUMENT: str = "11222333000181"
    BANK_SLIP_DUE_DAYS: int = 3
    BANK_SLIP_EXPIRES_AFTER_DAYS: int = 30  # dias aceitando pagamento após vencimento
    BANK_SLIP_MIN_AMOUNT: Decimal = Decimal("2.50")
    BANK_SLIP_MAX_AMOUNT: Decimal = Decimal("99999999.99")

    # Limites de valor
    MIN_PAYMENT_AMOUNT: Decimal = Decimal("0.01")
    MAX_PAYMENT_AMOUNT: Decimal = Decimal("100000.00")
    INSTANT_TRANSFER_MIN_AMOUNT: Decimal = Decimal("0.01")
    INSTANT_TRANSFER_MAX_AMOUNT: Decimal = Decimal("100000.00")
    CARD_MIN_AMOUNT: Decimal = Decimal("1.00")
    CARD_MAX_AMOUNT: Decimal = Decimal("50000.00")

    # Taxas fixas por meio de pagamento (R$)
    FEE_INSTANT_TRANSFER: Decimal = Decimal("0.00")
    FEE_CARD_CREDIT: Decimal = Decimal("0.00")
    FEE_CARD_DEBIT: Decimal = Decimal("0.00")
    FEE_BANK_SLIP: Decimal = Decimal("3.50")

    # Taxa de parcelamento (% sobre o valor) por número de parcelas
    INSTALLMENT_RATES: Dict[int, Decimal] = {
        2: Decimal("2"), 3: Decimal("3"), 4: Decimal("4"), 5: Decimal("5"),
        6: Decimal("6"), 7: Decimal("7"), 8: Decimal("8"), 9: Decimal("9"),
        10: Decimal("10"), 11: Decimal("11"), 12: Decimal("12"),
    }
    MAX_INSTALLMENTS: int = 12

    # Janela de validade de transações pendentes (minutos)
    PENDING_TTL_INSTANT_TRANSFER: int = 30
    PENDING_TTL_BANK_SLIP: int = 3 * 24 * 60
    PENDING_TTL_DEFAULT: int = 15

    # Cofre de cartões
    CARD_ENCRYPTION_KEY: str = "default-card-encryption-key-change-me"
    CARD_ENCRYPTION_SALT: str = "checkout-card-vault"
    CARD_TOKEN_TTL_SECONDS: int = 15 * 60
    CARD_MAX_EXPIRY_YEARS: int = 20

    # Adquirente
    ACQUIRER_MODE: str = "simulated"  # simulated | http
    ACQUIRER_BASE_URL: str = "https://adquirente.sandbox.example.com/api/v1"
    ACQUIRER_API_KEY: str = "test_acquirer_api_key"
    ACQUIRER_TIMEOUT_SECONDS: float = 30.0

    # Webhooks
    WEBHOOK_SECRET: str = "webhook-secret-change-me"
    WEBHOOK_SIGNATURE_HEADER: str = "X-Webhook-Signature"

    # Concorrência
    PROCESS_LOCK_TIMEOUT_SECONDS: float = 10.0

    @property
    def DATABASE_URL(self) -> str:
        """URL de conexão com o banco de dados"""
        if self.DB_URL:
            return self.DB_URL
        return f"mysql+pymysql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    @property
    def cors_origins_list(self) -> List[str]:
        """Lista de origens CORS permitidas"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]


@lru_cache()
def get_settings() -> Settings:
    """Retorna instância cacheada das configurações"""
    return Settings()


settings = get_settings()
