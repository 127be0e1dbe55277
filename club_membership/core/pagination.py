"""Pagination configuration and dependency helpers."""

from typing import Annotated

from fastapi import Depends
from fastapi_pagination import Params
from pydantic import Field

from club_membership.core.config import settings


class DefaultParams(Params):
    page: int = Field(default=1, ge=1)
    size: int = Field(
        default=settings.pagination_page_size,
        ge=1,
        le=settings.pagination_page_size_max,
    )


ParamsDep = Annotated[DefaultParams, Depends()]
