from typing import Annotated

from fastapi import Depends

from gatekeeper.core.gateway.auth import AuthProvider, get_auth_provider

AuthProviderDep = Annotated[AuthProvider, Depends(get_auth_provider)]
