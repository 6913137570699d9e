"""Shared fixtures for codecite tests."""

import os
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from codecite.config import Config
from codecite.indexer.database import Database
from codecite.indexer.indexer import Indexer
from codecite.providers.embeddings import HashingEmbedder

USERS_CONTROLLER = """\
import { Controller, Get, Post, Body, Param } from '@nestjs/common';

interface CreateUserDto {
  email: string;
  name?: string;
}

@Controller('users')
export class UsersController {
  constructor(private readonly users: UsersService) {}

  @Get(':id')
  findOne(@Param('id') id: string): Promise<User> {
    return this.users.findOne(id);
  }

  @Post()
  async create(@Body() dto: CreateUserDto): Promise<User> {
    const user = await this.users.create(dto);
    await this.pubsub.topic('user.created').publish(Buffer.from(user.id));
    return user;
  }
}
"""

README = """\
# Acme API

Service that manages users.

## Setup

Run `make dev` to start the database.
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove CODECITE_* variables so tests see defaults."""
    for name in list(os.environ):
        if name.startswith("CODECITE_") or name in ("OPENAI_API_KEY", "GITHUB_TOKEN"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config(tmp_path, monkeypatch) -> Config:
    monkeypatch.setenv("CODECITE_DB", str(tmp_path / "index.db"))
    monkeypatch.setenv("CODECITE_EMBED_PROVIDER", "hash")
    return Config.from_env()


@pytest.fixture
def db(tmp_path: Path):
    database = Database(tmp_path / "index.db")
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def embedder() -> HashingEmbedder:
    return HashingEmbedder(dimensions=128)


@pytest.fixture
def indexer(db, embedder) -> Indexer:
    indexer = Indexer(db, embedder)
    indexer.initialize()
    return indexer


@pytest.fixture
def indexed(indexer) -> Indexer:
    """An index holding a small NestJS repository."""
    indexer.index_file("acme/api", "abc123", "src/users/users.controller.ts", USERS_CONTROLLER)
    indexer.index_file("acme/api", "abc123", "README.md", README)
    return indexer


@pytest.fixture
def chat():
    """A chat model double; tests set ``generate_structured`` behaviour."""
    return MagicMock()


@pytest.fixture
def users_controller() -> str:
    return USERS_CONTROLLER


@pytest.fixture
def readme() -> str:
    return README
