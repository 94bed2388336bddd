"""
Review Service

Post-order ratings. Only the client that placed an order may review it,
and a failed ownership check is reported exactly like a missing order so
callers cannot probe which order ids exist.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.core.config import Settings, get_settings
from tableside.core.errors import InternalError, InvalidArgumentError, NotFoundError
from tableside.models import Order, Review
from tableside.schemas import ReviewCreate

logger = logging.getLogger(__name__)


class ReviewService:

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()

    async def submit_review(self, order_id: str, review: ReviewCreate) -> Review:
        """
        Record a review for an order placed by review.client_id.

        Raises:
            InvalidArgumentError: Rating out of bounds, or order already reviewed
            NotFoundError: Order missing or placed by another client
        """
        if not self.settings.min_rating <= review.rating <= self.settings.max_rating:
            raise InvalidArgumentError(
                f"Rating must be between {self.settings.min_rating} and {self.settings.max_rating}"
            )

        try:
            result = await self.session.execute(
                select(Order.restaurant_id).where(
                    Order.id == order_id,
                    Order.client_id == review.client_id,
                )
            )
            restaurant_id = result.scalar_one_or_none()
            if restaurant_id is None:
                await self.session.rollback()
                raise NotFoundError("Order not found or not authorized")

            existing = await self.session.execute(
                select(Review.id).where(Review.order_id == order_id).limit(1)
            )
            if existing.scalar_one_or_none() is not None:
                await self.session.rollback()
                raise InvalidArgumentError("Order has already been reviewed")

            row = Review(
                order_id=order_id,
                restaurant_id=restaurant_id,
                client_id=review.client_id,
                client_name=review.client_name,
                rating=review.rating,
                comment=review.comment,
            )
            self.session.add(row)
            await self.session.commit()
        except IntegrityError:
            # A concurrent submission for the same order committed first
            await self.session.rollback()
            raise InvalidArgumentError("Order has already been reviewed")
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.exception(f"Failed to store review for order {order_id}")
            raise InternalError("Failed to create review") from e

        logger.info(f"Review {row.id} (rating {row.rating}) recorded for order {order_id}")
        return row

    async def get_restaurant_reviews(self, restaurant_id: str) -> list[Review]:
        """All reviews of a restaurant, newest first."""
        result = await self.session.execute(
            select(Review)
            .where(Review.restaurant_id == restaurant_id)
            .order_by(Review.created_at.desc())
        )
        return list(result.scalars().all())
