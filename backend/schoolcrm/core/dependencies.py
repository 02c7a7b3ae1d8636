from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session

from schoolcrm.core.cache import ViewCache, get_view_cache
from schoolcrm.core.database import get_db
from schoolcrm.core.security import TokenPayload, verify_token

DbSession = Annotated[Session, Depends(get_db)]
CurrentUser = Annotated[TokenPayload, Depends(verify_token)]
ViewCacheDep = Annotated[ViewCache, Depends(get_view_cache)]
