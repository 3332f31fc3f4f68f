from backend.src.main import health_check, run
from backend.src.pki.api.certificates import get_ca, handle_csr
from backend.src.pki.ca.ca_manager import CAKeyPair
from backend.src.pki.metrics import ca_loaded_gauge
from backend.src.shared.config import Settings

# Pydantic Settings
Settings.model_config
Settings.PORT
Settings.PKI_NAMESPACE

# Read by logging / API consumers
CAKeyPair.subject

# Observable gauge registered through its callback
ca_loaded_gauge

# FastAPI routes and console entry point
get_ca
handle_csr
health_check
run
