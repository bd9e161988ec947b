from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from sqlalchemy import select

from stageboard.config import settings
from stageboard.constants import DEFAULT_COLUMNS
from stageboard.db import SessionLocal, init_db
from stageboard.logs import configure_logging
from stageboard.models import Board, Column, Task, User, utcnow
from stageboard.schemas import stage_slug

logger = logging.getLogger(__name__)

DEMO_USERS = [
  ("master@stageboard.local", "Мастер участка"),
  ("operator@stageboard.local", "Оператор ЧПУ"),
]


async def seed() -> None:
  async with SessionLocal() as db:
    users: dict[str, User] = {}
    for email, name in DEMO_USERS:
      res = await db.execute(select(User).where(User.email == email))
      u = res.scalar_one_or_none()
      if not u:
        u = User(email=email, name=name)
        db.add(u)
        logger.info("seeded user %s", email)
      users[email] = u
    await db.flush()

    if settings.seed_demo_board:
      # Only the shared board; project boards are created on demand by clients.
      bres = await db.execute(select(Board).where(Board.project_id.is_(None)).limit(1))
      board = bres.scalar_one_or_none()
      if not board:
        board = Board(project_id=None, title=settings.shared_board_title, description="Демонстрационная доска")
        db.add(board)
        await db.flush()
        cols = []
        for idx, (title, color) in enumerate(DEFAULT_COLUMNS):
          c = Column(board_id=board.id, title=title, stage=stage_slug(title), position=idx, color=color, is_default=True)
          db.add(c)
          cols.append(c)
        await db.flush()

        operator = users["operator@stageboard.local"]
        now = utcnow()
        demo = [
          (cols[0], "Раскрой листа 12 мм", "high", ["раскрой"], now + timedelta(days=3)),
          (cols[0], "Закупка фурнитуры", "medium", ["снабжение"], None),
          (cols[1], "Кромкование фасадов", "urgent", ["кромка", "фасады"], now + timedelta(days=1)),
          (cols[2], "Сборка корпуса шкафа", "medium", ["сборка"], now - timedelta(days=1)),
        ]
        positions: dict[str, int] = {}
        for col, title, priority, tags, due in demo:
          pos = positions.get(col.id, 0)
          positions[col.id] = pos + 1
          db.add(
            Task(
              column_id=col.id,
              title=title,
              priority=priority,
              tags=tags,
              due_date=due,
              assignee_id=operator.id,
              position=pos,
            )
          )
        logger.info("seeded demo board %s", board.id)

    await db.commit()


async def _main() -> None:
  await init_db()
  await seed()


def main() -> None:
  configure_logging()
  asyncio.run(_main())


if __name__ == "__main__":
  main()
