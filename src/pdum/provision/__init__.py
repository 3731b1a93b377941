"""Provision GCP projects with billing, APIs and credentials"""

from pdum.provision.config import ProvisionConfig
from pdum.provision.control_plane import ControlPlane, GCloudControlPlane
from pdum.provision.provisioner import Provisioner, ProvisioningReport
from pdum.provision.types import (
    BillingAccount,
    BillingQuotaExceeded,
    ControlPlaneError,
    GCloudError,
    OperatorAbort,
    ProjectRecord,
    ProjectState,
    new_project_id,
)

__version__ = "0.1.0-alpha"


__all__ = [
    "__version__",
    "ControlPlane",
    "GCloudControlPlane",
    "Provisioner",
    "ProvisioningReport",
    "ProvisionConfig",
    "BillingAccount",
    "BillingQuotaExceeded",
    "ControlPlaneError",
    "GCloudError",
    "OperatorAbort",
    "ProjectRecord",
    "ProjectState",
    "new_project_id",
]
