"""Loads the user's thumbnail photo as a data URI"""

import base64
from typing import Dict, Optional

from dirauth.directory import DirectoryQuery
from dirauth.handlers.base import BaseHandler

THUMBNAIL_ATTRIBUTE = 'thumbnailPhoto'


class ThumbnailLoader(BaseHandler):

    def get_thumbnail(self, directory: DirectoryQuery, user_data: Dict) -> Optional[str]:
        entry = self.find_user(directory, user_data, [THUMBNAIL_ATTRIBUTE])
        if entry is None:
            return None

        photos = entry.get_raw(THUMBNAIL_ATTRIBUTE) or entry.get(THUMBNAIL_ATTRIBUTE)
        if not photos or not photos[0]:
            return None

        photo = photos[0]
        if isinstance(photo, str):
            photo = photo.encode('latin-1')
        return 'data:image/jpg;base64,' + base64.b64encode(photo).decode('ascii')
