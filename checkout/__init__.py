"""
Checkout - Motor de transações de pagamento (PIX, boleto e cartão)
"""

__version__ = "1.0.0"
