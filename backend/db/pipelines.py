from typing import Any, Dict, List
from bson import ObjectId

Pipeline = List[Dict[str, Any]]


def channel_profile_pipeline(username: str, viewer_id: ObjectId) -> Pipeline:
    """Channel card for ``username`` with subscriber counts as seen by ``viewer_id``"""
    return [
        {"$match": {"username": username.strip().lower()}},
        {
            "$lookup": {
                "from": "subscriptions",
                "localField": "_id",
                "foreignField": "channel",
                "as": "subscribers",
            }
        },
        {
            "$lookup": {
                "from": "subscriptions",
                "localField": "_id",
                "foreignField": "subscriber",
                "as": "subscribedTo",
            }
        },
        {
            "$addFields": {
                "subscribersCount": {"$size": "$subscribers"},
                "channelsSubscribedToCount": {"$size": "$subscribedTo"},
                "isSubscribed": {
                    "$cond": {
                        "if": {"$in": [viewer_id, "$subscribers.subscriber"]},
                        "then": True,
                        "else": False,
                    }
                },
            }
        },
        {
            "$project": {
                "fullName": 1,
                "username": 1,
                "email": 1,
                "avatar": 1,
                "coverImage": 1,
                "subscribersCount": 1,
                "channelsSubscribedToCount": 1,
                "isSubscribed": 1,
            }
        },
    ]


def watch_history_pipeline(user_id: ObjectId) -> Pipeline:
    """The user's watched videos, each with its owner flattened to a small card"""
    return [
        {"$match": {"_id": user_id}},
        # $lookup does not keep array order; keep the ids to restore it
        {"$addFields": {"watchedIds": "$watchHistory"}},
        {
            "$lookup": {
                "from": "videos",
                "localField": "watchHistory",
                "foreignField": "_id",
                "as": "watchHistory",
                "pipeline": [
                    {
                        "$lookup": {
                            "from": "users",
                            "localField": "owner",
                            "foreignField": "_id",
                            "as": "owner",
                            "pipeline": [
                                {"$project": {"fullName": 1, "username": 1, "avatar": 1}},
                            ],
                        }
                    },
                    {"$addFields": {"owner": {"$first": "$owner"}}},
                ],
            }
        },
        {"$project": {"watchHistory": 1, "watchedIds": 1}},
    ]
