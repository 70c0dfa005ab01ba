#!/usr/bin/env python3
"""
Demo: one default page per folder

Walks through the folder/page example:

  Folder      Page        Visible
  /           About Us    1
  /           News        1
  /           Home        1
  /products   AVG         1
  /products   Good        1
  /products   Best        1
  /products   Impossible  0

and shows the default moving on save and delete, under both the
nearest-neighbour and the first-in-set policy.

Usage:
    python demo_defaults.py              # in-memory store
    python demo_defaults.py --postgres   # embedded PostgreSQL (needs pgserver)
"""

import argparse
import logging
import tempfile

from defaults import DefaultKeeper, DefaultSettings
from layout.grid import render_grid
from store.memory import MemoryStore
from store.models import Page
from store.predicates import Field


PAGES = [
    ("/", "About Us", 1, True),
    ("/", "News", 2, True),
    ("/", "Home", 3, True),
    ("/products", "AVG", 1, True),
    ("/products", "Good", 2, True),
    ("/products", "Best", 3, True),
    ("/products", "Impossible", 4, False),
]


def _show(store, folder):
    pages = store.all(Page, Field("folder") == folder, order=["ordering"])
    rows = render_grid(
        pages, 4,
        lambda cell: f"{cell.data.title}{'*' if cell.data.default else ''}",
        empty="-",
    )
    print(f"  {folder:<10} " + " | ".join(" ".join(f"{c:<12}" for c in row) for row in rows))


def run(store, love_thy_neighbour):
    keeper = DefaultKeeper(store, Page, DefaultSettings(
        order_fields=("ordering",),
        group_fields=("folder",),
        love_thy_neighbour=love_thy_neighbour,
        group_conditions={"visible": True},
    )).attach()

    pages = {}
    for folder, title, ordering, visible in PAGES:
        page = Page(folder=folder, title=title, ordering=ordering, visible=visible)
        store.save(page)
        pages[title] = page

    print("\nAfter inserting (first visible page of each folder is forced default):")
    _show(store, "/")
    _show(store, "/products")

    pages["Home"].default = True
    store.save(pages["Home"])
    print("\nHome marked default (About Us cleared):")
    _show(store, "/")

    store.delete(pages["Home"])
    print("\nHome deleted:")
    _show(store, "/")

    pages["Good"].default = True
    store.save(pages["Good"])
    store.delete(pages["Good"])
    print("\nGood made default, then deleted:")
    _show(store, "/products")

    keeper.detach()


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--postgres", action="store_true",
                        help="use an embedded PostgreSQL server instead of memory")
    parser.add_argument("-v", "--verbose", action="store_true", help="log corrective writes")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    print("=" * 70)
    print("  Single Default per Group Demo   (* marks the default)")
    print("=" * 70)

    for love_thy_neighbour in (True, False):
        policy = "nearest neighbour" if love_thy_neighbour else "first in set"
        print(f"\n── Policy: {policy} " + "─" * (50 - len(policy)))

        if args.postgres:
            from store.querylog import QueryLog
            from store.server import RecordStoreServer

            query_log = QueryLog(name="demo")
            with RecordStoreServer(data_dir=tempfile.mkdtemp(prefix="demo_defaults_")) as server:
                with server.client(query_log=query_log) as client:
                    run(client, love_thy_neighbour)
            print()
            print(query_log.render(sort_by_time=True).splitlines()[0])
        else:
            run(MemoryStore(), love_thy_neighbour)


if __name__ == "__main__":
    main()
