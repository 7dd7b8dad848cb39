"""Wallet Vault Meta information.
   Wallet Vault keeps EVM private keys encrypted at rest and unlocks them
   with a platform authenticator (PRF) or a password.
"""
__title__ = 'wallet_vault'
__description__ = (
   'Local encrypted key vault for EVM private keys, unlocked '
   'by authenticator PRF output or password.'
)
__version__ = '0.3.0'
__license__ = 'Apache-2.0'
