from slowapi import Limiter
from lumilink.core.utils import get_client_ip

# Keyed on the forwarded client IP so visitors behind one proxy get separate buckets
limiter = Limiter(key_func=get_client_ip)
