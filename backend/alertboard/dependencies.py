from fastapi import Request

from alertboard.categories.classifier import CategoryMap
from alertboard.integrations.sync_scheduler import IngestionJob
from alertboard.names.resolver import NameResolver


def get_name_resolver(request: Request) -> NameResolver:
    return request.app.state.name_resolver


def get_category_map(request: Request) -> CategoryMap:
    return request.app.state.category_map


def get_ingestion_job(request: Request) -> IngestionJob:
    return request.app.state.ingestion_job
