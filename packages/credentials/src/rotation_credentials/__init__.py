"""Rotating client certificate supply.

A library package, like auth: no task queue and no worker process. The
connection manager calls RotatingCertificateProvider on every dial, and the
provider reads the current pair through FileCredentialSource.
"""

from rotation_credentials.provider import RotatingCertificateProvider
from rotation_credentials.source import FileCredentialSource

__all__ = ["FileCredentialSource", "RotatingCertificateProvider"]
