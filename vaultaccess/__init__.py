from vaultaccess.client import generate_random_uuid
from vaultaccess.client import get_domain
from vaultaccess.client import open_all_vaults
from vaultaccess.vault import Account
from vaultaccess.vault import Field
from vaultaccess.vault import Url
from vaultaccess.vault import Vault
