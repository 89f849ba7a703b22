"""Signer factory.

Creates the signing backend named by configuration. Configuration is
passed in explicitly; this module never reads the environment.
"""

import logging

from movement_custody.config import Settings
from movement_custody.signing.base import CustodySigner, SignerType

logger = logging.getLogger(__name__)


def get_signer_type(settings: Settings) -> SignerType:
    """Determine which signer to use.

    Returns:
        SignerType enum
    """
    return SignerType(settings.signer_backend)


def get_signer(settings: Settings) -> CustodySigner:
    """Create the configured signer instance.

    Raises:
        ValueError: If the Fireblocks backend is selected without credentials
    """
    signer_type = get_signer_type(settings)
    logger.info(f"Initializing {signer_type.value} signer")

    if signer_type == SignerType.SIMULATED:
        from movement_custody.signing.simulated import SimulatedSigner
        return SimulatedSigner(seed=settings.simulated_signer_seed)

    from movement_custody.signing.fireblocks import FireblocksSigner
    return FireblocksSigner(
        api_key=settings.fireblocks_api_key,
        secret_key=settings.load_secret_key(),
        base_url=settings.fireblocks_base_url,
    )
