from __future__ import annotations

import os
import shutil
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Optional
from urllib.parse import urlparse

from .base import AcquiredImage, Chapter, ItemResult, Work
from .config import Config
from .errors import FETCH_ERRORS, PartialDownloadFailure
from .scramble import reconstruct, segment_count
from .utils import log_debug, log_verbose

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif")


def filename_from_url(url: str) -> str:
    return os.path.basename(urlparse(url).path)


class Downloader:
    """Fetches, descrambles and stores every page of a work."""

    def __init__(self, client, config: Optional[Config] = None):
        self.client = client
        self.config = config or client.config

    @property
    def concurrency(self) -> int:
        return max(1, self.config.concurrent_download)

    def work_dir(self, work: Work) -> str:
        return os.path.join(self.config.base_dir, work.id)

    # ------------------------------------------------------------------ api
    def download_work(self, work: Work) -> List[AcquiredImage]:
        download_dir = self.work_dir(work)
        os.makedirs(download_dir, exist_ok=True)

        existing = self.existing_images(download_dir)
        if existing and len(existing) >= work.pages:
            log_verbose(
                f"  Found {len(existing)} downloaded image(s) in {download_dir}, skipping download."
            )
            return existing

        all_images: List[AcquiredImage] = []
        next_index = 0
        for chapter in work.chapters:
            print(f"{chapter.title or chapter.id}: {len(chapter.image_urls)} image(s)")
            images = self.download_chapter(chapter, download_dir, next_index)
            all_images.extend(images)
            next_index += len(images)

        all_images.sort(key=lambda img: img.index)
        return all_images

    def download_chapter(
        self, chapter: Chapter, download_dir: str, start_index: int
    ) -> List[AcquiredImage]:
        """Downloads one chapter; any failed image fails the whole chapter."""
        urls = chapter.image_urls
        slots: List[Optional[AcquiredImage]] = [None] * len(urls)
        errors: List[Exception] = []

        with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
            futures = [
                executor.submit(
                    self._fetch_one, chapter, i, url, download_dir, start_index + i
                )
                for i, url in enumerate(urls)
            ]
            for future in as_completed(futures):
                result = future.result()
                if result.ok:
                    slots[result.index] = result.value
                else:
                    errors.append(result.error)

        if errors:
            raise PartialDownloadFailure(chapter.id, errors)
        return [img for img in slots if img is not None]

    def _fetch_one(
        self,
        chapter: Chapter,
        index: int,
        url: str,
        download_dir: str,
        global_index: int,
    ) -> ItemResult[AcquiredImage]:
        if index < len(chapter.image_names):
            filename = chapter.image_names[index]
        else:
            filename = filename_from_url(url)

        try:
            data = self.client.download_image(url)
        except FETCH_ERRORS as e:
            log_verbose(f"  Error: failed to download image {index} ({url}): {e}")
            return ItemResult(index, error=e)

        segments = segment_count(chapter.scramble_id, chapter.id, filename)
        if segments:
            log_debug(f"    {filename}: descrambling {segments} segments")
        data = reconstruct(data, segments)

        ext = os.path.splitext(filename)[1] or ".jpg"
        path = os.path.join(download_dir, f"{global_index:04d}{ext}")
        try:
            with open(path, "wb") as fh:
                fh.write(data)
        except OSError as e:
            log_verbose(f"  Error: failed to save image {index} to {path}: {e}")
            return ItemResult(index, error=e)

        return ItemResult(
            index,
            value=AcquiredImage(
                chapter_index=index,
                index=global_index,
                path=path,
                data=data,
                filename=filename,
            ),
        )

    # --------------------------------------------------------------- resume
    def existing_images(self, directory: str) -> List[AcquiredImage]:
        """Previously stored pages, indexed by the number in their filename."""
        if not os.path.isdir(directory):
            return []

        images: List[AcquiredImage] = []
        for name in os.listdir(directory):
            path = os.path.join(directory, name)
            stem, ext = os.path.splitext(name)
            if ext.lower() not in IMAGE_EXTENSIONS or not stem.isdigit():
                continue
            if not os.path.isfile(path) or os.path.getsize(path) == 0:
                continue
            with open(path, "rb") as fh:
                data = fh.read()
            index = int(stem)
            images.append(
                AcquiredImage(
                    chapter_index=index, index=index, path=path, data=data, filename=name
                )
            )

        images.sort(key=lambda img: img.index)
        return images

    def cleanup(self, work: Work) -> None:
        log_verbose(f"  Cleaning up download directory: {self.work_dir(work)}")
        shutil.rmtree(self.work_dir(work), ignore_errors=True)


__all__ = ["Downloader", "IMAGE_EXTENSIONS", "filename_from_url"]
