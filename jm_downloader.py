#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# ------------------------------------------------------------------
# JM comic downloader  →  descrambled images  →  (encrypted) PDF
# -----------------------------------------------------------
import argparse
import os
import sys

from jmcomic import (
    Config,
    Downloader,
    JMClient,
    JMError,
    PDFBuilder,
)
from jmcomic.config import DEFAULT_CONFIG_PATH
from jmcomic.mirrors import usable_domains
from jmcomic.utils import log_verbose, normalize_work_id, set_verbosity


def fail(action: str, error: Exception):
    sys.exit(f"{action} failed ({type(error).__name__}): {error}")


# -----------------------------------------------------------
# commands
# -----------------------------------------------------------
def cmd_download(client: JMClient, args) -> None:
    work_id = normalize_work_id(args.work_id)
    print(f"Fetching JM{work_id}...")
    try:
        work = client.fetch_work(work_id)
    except JMError as e:
        fail("Fetching comic info", e)

    print(f"{work.title} (id={work.id}, {work.pages} pages)")
    if work.author:
        log_verbose(f"  Author: {work.author}")
    if work.tags:
        log_verbose(f"  Tags: {', '.join(work.tags)}")

    downloader = Downloader(client, client.config)
    try:
        images = downloader.download_work(work)
    except JMError as e:
        fail("Downloading images", e)
    print(f"Downloaded {len(images)} images, building PDF...")

    try:
        pdf_files = PDFBuilder(client.config).create_pdfs(work, images)
    except JMError as e:
        fail("Creating PDF", e)

    for path in pdf_files:
        print(f"  {path}")

    if client.config.cleanup_after:
        log_verbose("  Removing downloaded images...")
        for image in images:
            try:
                os.remove(image.path)
            except OSError as e:
                log_verbose(f"  Warning: Could not remove {image.path}: {e}")
    print("\nDone.")


def cmd_search(client: JMClient, args) -> None:
    try:
        results = client.search_works(args.query, args.page)
    except JMError as e:
        fail("Search", e)
    if not results:
        print("No comics found.")
        return
    print(f"Search results (page {args.page})")
    for i, result in enumerate(results, start=1):
        print(f"{i}. [JM{result.id}] {result.title}")


def cmd_random(client: JMClient, args) -> None:
    try:
        pick = client.random_work(args.query or "")
    except JMError as e:
        fail("Random pick", e)
    print(f"Random pick: [JM{pick.id}] {pick.title}")
    if args.download:
        args.work_id = pick.id
        cmd_download(client, args)


def cmd_domains(client: JMClient, args) -> None:
    if args.action == "list":
        for domain in client.resolver.domains():
            print(domain)
        return

    if args.action == "clear":
        client.reset_mirrors()
        print("Cleared configured domains; built-in defaults are active again.")
        return

    print("Checking domain availability...")
    results = client.probe_mirrors()
    for domain in sorted(results):
        mark = "ok  " if results[domain] == "ok" else "fail"
        print(f"  [{mark}] {domain}")
    usable = usable_domains(results)
    if not usable:
        print("No usable domains found, keeping the current list.")
        return
    client.update_mirrors(usable)
    print(f"Saved {len(usable)} usable domain(s) to the config.")


# -----------------------------------------------------------
# main
# -----------------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser("jm downloader")
    p.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to the JSON config file (default: {DEFAULT_CONFIG_PATH}).",
    )
    p.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable detailed, step-by-step logging.",
    )
    p.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable highly detailed debug-level logging.",
    )
    sub = p.add_subparsers(dest="command", required=True)

    dl = sub.add_parser("download", help="Download a comic and pack it into PDF(s).")
    dl.add_argument("work_id", help="Comic id, with or without the 'JM' prefix.")
    dl.set_defaults(func=cmd_download)

    search = sub.add_parser("search", help="Search comics by keywords or tags.")
    search.add_argument(
        "query", help="Keywords/tags, separated by commas (e.g. 'tag1,tag2')."
    )
    search.add_argument("--page", type=int, default=1)
    search.set_defaults(func=cmd_search)

    rnd = sub.add_parser("random", help="Pick a random comic for an optional query.")
    rnd.add_argument("query", nargs="?", default="")
    rnd.add_argument(
        "--download",
        action="store_true",
        help="Download the picked comic right away.",
    )
    rnd.set_defaults(func=cmd_random)

    dom = sub.add_parser("domains", help="Inspect or maintain the mirror list.")
    dom.add_argument("action", choices=["update", "clear", "list"])
    dom.set_defaults(func=cmd_domains)
    return p


def main(argv=None):
    args = build_parser().parse_args(argv)
    set_verbosity(args.verbose, args.debug)

    try:
        config = Config.load(args.config)
    except (OSError, ValueError) as e:
        sys.exit(f"Could not load config {args.config}: {e}")

    client = JMClient(config)
    args.func(client, args)


if __name__ == "__main__":
    main()
