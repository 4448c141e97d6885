"""Spin pipeline sequencer.

idle -> validating -> committing-bet -> resolving-reels -> evaluating
     -> processing-features -> finalizing -> idle

Any failure inside the pipeline is handled once at the top: the game
state is restored from the pre-spin checkpoint, pending timers are
cancelled, and the rolled-back state is persisted.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from greedy_squirrel.config_hash import get_config_hash
from greedy_squirrel.context import GameContext
from greedy_squirrel.errors import ErrorCode, GameError
from greedy_squirrel.features.autoplay import Autoplay
from greedy_squirrel.features.bonus_pick import PickResult
from greedy_squirrel.features.gamble import GamblePhase, GambleRound
from greedy_squirrel.logic.models import AnticipationDecision, Grid, SpinCheckpoint, WinInfo
from greedy_squirrel.persistence import PersistenceCodec
from greedy_squirrel.progression.levels import LevelUp
from greedy_squirrel.telemetry import (
    FeatureTriggeredEvent,
    SpinCompletedEvent,
    SpinFailedEvent,
)


logger = logging.getLogger(__name__)

SPIN_FAILED_MESSAGE = "ERROR: SPIN FAILED\nBET REFUNDED"
FREE_SPINS_FAILED_MESSAGE = "FREE SPINS INTERRUPTED\nRESUMING NORMAL PLAY"

REEL_TIMER = "reel"
FREE_SPIN_TIMER = "free-spins"
GAMBLE_OFFER_TIMER = "gamble-offer"


def format_amount(amount: float) -> str:
    return f"{int(amount):,}"


@dataclass
class SpinOutcome:
    """Everything one pass through the pipeline produced."""

    grid: Grid = field(default_factory=list)
    win: WinInfo | None = None
    total_win: float = 0
    cascade_win: float = 0
    is_free_spin: bool = False
    free_spins_awarded: int = 0
    bonus_win: float = 0
    gamble_result: float | None = None
    features: list[str] = field(default_factory=list)
    anticipation: AnticipationDecision | None = None
    level_ups: list[LevelUp] = field(default_factory=list)
    achievements: list[str] = field(default_factory=list)
    error: GameError | None = None


class SpinOrchestrator:
    """
    Top-level state machine driving one spin at a time.

    `state.is_spinning` is the only mutual exclusion: a spin request while
    it is set is rejected, never queued. Free spins awarded by a spin run
    only after that spin has fully finalized.
    """

    def __init__(self, context: GameContext, codec: PersistenceCodec | None = None):
        self.context = context
        self.codec = codec
        self.autoplay = Autoplay(self)
        self._bonus_done: asyncio.Event | None = None
        self._gamble_done: asyncio.Event | None = None
        self._gamble_seconds_left = 0
        self._credits_hit_zero = False

    # Queries

    def spin_block_reason(self) -> GameError | None:
        """Why a spin cannot start right now, or None."""
        ctx = self.context
        if ctx.state.is_spinning:
            return GameError(ErrorCode.SPIN_IN_PROGRESS, "A spin is already in progress")
        if ctx.bonus.is_active():
            return GameError(ErrorCode.FEATURE_UNAVAILABLE, "Finish the bonus game first")
        if not ctx.free_spins.is_active() and ctx.state.credits < ctx.state.current_bet:
            return GameError(
                ErrorCode.INSUFFICIENT_CREDITS,
                f"Insufficient credits: {ctx.state.credits} < {ctx.state.current_bet}",
            )
        return None

    def can_spin(self) -> bool:
        return self.spin_block_reason() is None

    def snapshot(self) -> dict[str, Any]:
        ctx = self.context
        return {
            **ctx.state.snapshot(),
            "freeSpinsRemaining": ctx.free_spins.remaining_spins,
            "freeSpinsMultiplier": ctx.free_spins.multiplier if ctx.free_spins.is_active() else 1,
            "bonusActive": ctx.bonus.is_active(),
            "gamblePhase": ctx.gamble.phase.value,
        }

    def update_display(self) -> None:
        self.context.renderer.update_display(self.snapshot())

    # Spin pipeline

    async def spin(self) -> SpinOutcome:
        """
        Run one spin.

        Raises GameError when the spin cannot start. Failures once the spin
        has started are rolled back and reported on the returned outcome.
        """
        # 1) canSpin
        blocked = self.spin_block_reason()
        if blocked is not None:
            raise blocked

        ctx = self.context
        is_free_spin = ctx.free_spins.is_active()

        # 2) checkpoint
        checkpoint = ctx.state.create_checkpoint()
        checkpoint.freeSpins = ctx.free_spins.get_save_data()

        try:
            outcome = await self._run_pipeline(is_free_spin)
        except asyncio.CancelledError as e:
            # The task itself was cancelled: restore, then let cancellation propagate
            await self._fail_spin(e, checkpoint, is_free_spin)
            raise
        except Exception as e:
            return await self._fail_spin(e, checkpoint, is_free_spin)

        # 11) run free spins awarded by this spin
        if outcome.free_spins_awarded and not is_free_spin:
            await self.run_free_spins()
        return outcome

    async def _fail_spin(
        self, exc: BaseException, checkpoint: SpinCheckpoint, is_free_spin: bool
    ) -> SpinOutcome:
        ctx = self.context
        error = await ctx.errors.handle(
            exc,
            context="Spin",
            default_code=ErrorCode.SPIN_FAILED,
            user_message=SPIN_FAILED_MESSAGE,
            fallback=lambda: self._rollback(checkpoint),
        )
        ctx.telemetry.emit_spin_failed(
            SpinFailedEvent(
                code=error.code.value,
                category=error.category.value,
                is_free_spin=is_free_spin,
                refunded=not is_free_spin,
                config_hash=get_config_hash(ctx.config),
            )
        )
        return SpinOutcome(is_free_spin=is_free_spin, error=error)

    async def _run_pipeline(self, is_free_spin: bool) -> SpinOutcome:
        ctx = self.context
        state = ctx.state
        bet = state.current_bet
        outcome = SpinOutcome(is_free_spin=is_free_spin)

        # 3) initializeSpin
        state.set_spinning(True)
        ctx.sound.play("reelSpin")
        if not is_free_spin:
            state.deduct_credits(bet)
        state.set_last_win(0)
        ctx.renderer.highlight_positions([])
        self.update_display()
        self._award_xp(outcome, "spin", bet=bet)
        ctx.challenges.update_progress("play_spins", 1)

        # 4) prepareReelResults
        grid, positions = self._draw_reels()
        state.set_reel_positions(positions)
        outcome.grid = grid
        outcome.anticipation = ctx.anticipation.advise(grid)

        # 5) executeReelSpin
        await self._spin_reels(grid, outcome.anticipation)

        # 6) evaluate
        win = ctx.evaluator.evaluate(grid, bet)
        outcome.win = win
        logger.debug(
            "Spin evaluated: win=%s lines=%s scatters=%d",
            win.total_win,
            win.winning_lines,
            win.scatter_count,
        )

        # 7) processWins
        total_win = await self._process_wins(outcome, win, bet, is_free_spin)

        # 8) updateCreditsAndStats
        self._update_credits_and_stats(outcome, total_win, bet, is_free_spin)

        # 9) handleFeatureTriggers
        await self._handle_feature_triggers(outcome, win, is_free_spin)

        # 10) finalizeSpin
        await self._finalize_spin(outcome, total_win, win, bet, is_free_spin)

        ctx.telemetry.emit_spin_completed(
            SpinCompletedEvent(
                bet=0 if is_free_spin else bet,
                win=outcome.total_win,
                cascade_win=outcome.cascade_win,
                is_free_spin=is_free_spin,
                scatter_count=win.scatter_count,
                features=list(outcome.features),
                anticipation=outcome.anticipation.kind if outcome.anticipation else None,
                config_hash=get_config_hash(ctx.config),
            )
        )
        return outcome

    def _draw_reels(self) -> tuple[Grid, list[int]]:
        """Fix every reel's stop before anything is shown."""
        ctx = self.context
        rows = ctx.config.reels.row_count
        positions = [ctx.weighted_rng.random_offset(len(strip)) for strip in ctx.reel_strips]
        grid = [
            ctx.weighted_rng.window(strip, offset, rows)
            for strip, offset in zip(ctx.reel_strips, positions)
        ]
        return grid, positions

    async def _stop_reel(self, reel_index: int, symbols: list[str], duration: float) -> None:
        await self.context.timers.sleep(duration, REEL_TIMER)
        await self.context.renderer.reel_stopped(reel_index, symbols)

    async def _spin_reels(self, grid: Grid, anticipation: AnticipationDecision | None) -> None:
        """Resolves only after every reel has reported stopped."""
        ctx = self.context
        if anticipation is None:
            await asyncio.gather(
                *(
                    self._stop_reel(i, column, ctx.turbo.reel_spin_time(i))
                    for i, column in enumerate(grid)
                )
            )
            return

        # Sequential stops with the dramatic delay from the anticipation reel on
        for i, column in enumerate(grid):
            duration = ctx.turbo.reel_spin_time(i)
            if i == anticipation.reel_index:
                duration += anticipation.delay
                ctx.sound.play("anticipation", intensity=anticipation.intensity)
            await self._stop_reel(i, column, duration)

    async def _process_wins(
        self, outcome: SpinOutcome, win: WinInfo, bet: float, is_free_spin: bool
    ) -> float:
        ctx = self.context
        if win.total_win <= 0:
            return 0

        total_win = win.total_win
        if is_free_spin:
            total_win = ctx.free_spins.apply_multiplier(win.total_win)
            ctx.free_spins.add_win(total_win)

        multiple = total_win / bet
        ctx.renderer.highlight_positions(win.winning_positions)
        ctx.sound.play("win", multiplier=multiple, tier=self._win_tier(multiple))

        message = f"WIN: {format_amount(total_win)}"
        if is_free_spin:
            message += f"\n{ctx.free_spins.multiplier}x MULTIPLIER!"
        if win.has_scatter_win:
            message += f"\n{win.scatter_count} SCATTERS!"
            ctx.statistics.record_feature_trigger("scatter", win.scatter_count)
            ctx.challenges.update_progress("hit_scatters", win.scatter_count)
            self._award_xp(outcome, "scatter")
            ctx.sound.play("scatter")
        await ctx.renderer.show_message(message, total_win)

        if ctx.cascade.enabled:
            cascade = await ctx.cascade.resolve(outcome.grid, win.winning_positions, bet)
            if cascade.total_win > 0:
                outcome.cascade_win = cascade.total_win
                total_win += cascade.total_win
                ctx.statistics.record_feature_trigger("cascade")
                if is_free_spin:
                    ctx.free_spins.add_win(cascade.total_win)

        return total_win

    def _win_tier(self, multiple: float) -> str:
        config = self.context.config
        if multiple >= config.mega_win_threshold:
            return "mega"
        if multiple >= config.big_win_threshold:
            return "big"
        return "normal"

    def _update_credits_and_stats(
        self, outcome: SpinOutcome, total_win: float, bet: float, is_free_spin: bool
    ) -> None:
        ctx = self.context
        wagered = 0 if is_free_spin else bet
        outcome.total_win = total_win
        if total_win <= 0:
            ctx.statistics.record_spin(wagered, 0, False)
            return

        ctx.state.add_credits(total_win)
        ctx.state.set_last_win(total_win)
        self._award_xp(outcome, "win", amount=total_win)
        ctx.statistics.record_spin(wagered, total_win, True)
        ctx.challenges.update_progress("win_amount", total_win)

        multiple = total_win / bet
        if multiple >= ctx.config.big_win_threshold:
            self._award_xp(outcome, "bigWin")
        ctx.challenges.update_progress("big_win", multiple)
        self.update_display()

    async def _handle_feature_triggers(
        self, outcome: SpinOutcome, win: WinInfo, is_free_spin: bool
    ) -> None:
        """Free spins are checked before the bonus game."""
        ctx = self.context
        config_hash = get_config_hash(ctx.config)

        if win.has_scatter_win and ctx.free_spins.should_trigger(win.scatter_count):
            if is_free_spin:
                added = ctx.free_spins.retrigger(win.scatter_count)
                if added:
                    ctx.telemetry.emit_feature_triggered(
                        FeatureTriggeredEvent("free_spins_retrigger", win.scatter_count, added, config_hash)
                    )
                    await ctx.renderer.show_message(f"+{added} FREE SPINS!")
            else:
                ctx.statistics.record_feature_trigger("freeSpins")
                self._award_xp(outcome, "freeSpins")
                ctx.challenges.update_progress("trigger_freespins", 1)
                ctx.sound.play("freeSpinsTrigger")

                spins = ctx.free_spins.trigger(win.scatter_count)
                outcome.free_spins_awarded = spins
                ctx.telemetry.emit_feature_triggered(
                    FeatureTriggeredEvent("free_spins", win.scatter_count, spins, config_hash)
                )
                await ctx.renderer.show_message(
                    f"FREE SPINS!\n{spins} SPINS AT {ctx.free_spins.multiplier}x"
                )

        if win.bonus.triggered and not is_free_spin:
            ctx.statistics.record_feature_trigger("bonus")
            self._award_xp(outcome, "bonus")
            ctx.challenges.update_progress("trigger_bonus", 1)
            ctx.sound.play("bonusTrigger")

            ctx.bonus.trigger(win.bonus.count)
            bonus_win = await self._play_bonus_game()
            ctx.telemetry.emit_feature_triggered(
                FeatureTriggeredEvent("bonus", win.bonus.count, bonus_win, config_hash)
            )
            outcome.bonus_win = bonus_win
            if bonus_win > 0:
                ctx.state.add_credits(bonus_win)
                ctx.state.set_last_win(ctx.state.last_win + bonus_win)
                outcome.total_win += bonus_win
                self.update_display()
                await ctx.renderer.show_message(f"BONUS WIN: {format_amount(bonus_win)}", bonus_win)

    async def _finalize_spin(
        self,
        outcome: SpinOutcome,
        total_win: float,
        win: WinInfo,
        bet: float,
        is_free_spin: bool,
    ) -> None:
        ctx = self.context
        state = ctx.state

        if is_free_spin and not ctx.free_spins.execute_spin():
            session_win = ctx.free_spins.end()
            await ctx.renderer.show_message(
                f"FREE SPINS COMPLETE\nTOTAL WIN: {format_amount(session_win)}", session_win
            )

        level = ctx.levels.level if ctx.levels is not None else 1
        unlocked = ctx.achievements.check(
            ctx.statistics.achievement_view(level), state.last_win, bet, state.credits
        )
        outcome.achievements = [a.id for a in unlocked]
        for achievement in unlocked:
            ctx.sound.play("achievement", id=achievement.id)

        # Gamble is offered on the line/cascade win of a regular spin only
        if (
            total_win > 0
            and not is_free_spin
            and not win.bonus.triggered
            and ctx.gamble.can_gamble(
                total_win,
                in_free_spins=ctx.free_spins.is_active(),
                in_bonus=ctx.bonus.is_active(),
                auto_collect=ctx.auto_collect_enabled,
            )
        ):
            state.deduct_credits(total_win)
            self.update_display()
            result = await self._offer_gamble(total_win)
            state.add_credits(result)
            state.set_last_win(result)
            outcome.gamble_result = result
            outcome.total_win = result
            self.update_display()

        if ctx.free_spins.is_active():
            outcome.features.append("freeSpins")
        if win.has_scatter_win:
            outcome.features.append("scatter")
        if win.bonus.triggered:
            outcome.features.append("bonus")
        if outcome.cascade_win > 0:
            outcome.features.append("cascade")
        ctx.history.record(0 if is_free_spin else bet, outcome.total_win, outcome.features)

        self._track_comeback()
        await self.persist()
        state.set_spinning(False)

        if state.credits == 0 and not is_free_spin:
            await ctx.renderer.show_message(
                f"GAME OVER\nResetting to {state.initial_credits} credits"
            )
            state.set_credits(state.initial_credits)
            self.update_display()
            await self.persist()

        if outcome.level_ups:
            await ctx.renderer.show_message(f"LEVEL UP! LEVEL {outcome.level_ups[-1].level}")

    def _award_xp(self, outcome: SpinOutcome, source: str, amount: float = 0, bet: float = 0) -> None:
        levels = self.context.levels
        if levels is None:
            return
        level_ups = levels.award_xp(source, amount, bet)
        if level_ups:
            outcome.level_ups.extend(level_ups)
            self.context.sound.play("levelUp", level=level_ups[-1].level)

    def _track_comeback(self) -> None:
        ctx = self.context
        if ctx.state.credits == 0:
            self._credits_hit_zero = True
        elif (
            self._credits_hit_zero
            and ctx.state.credits >= ctx.config.progression.comeback_threshold
        ):
            self._credits_hit_zero = False
            ctx.statistics.record_comeback()
            logger.info("Comeback recorded at %d credits", ctx.state.credits)

    async def _rollback(self, checkpoint: SpinCheckpoint) -> None:
        ctx = self.context
        ctx.timers.clear_all()
        if ctx.bonus.is_active():
            ctx.bonus.end()
        if ctx.gamble.is_active():
            ctx.gamble.collect()
        self._bonus_done = None
        self._gamble_done = None
        ctx.free_spins.init(checkpoint.freeSpins)
        ctx.state.restore_checkpoint(checkpoint)
        ctx.renderer.highlight_positions([])
        self.update_display()
        await self.persist()

    # Free spins

    async def run_free_spins(self) -> None:
        """
        Play the active free-spins session to the end.

        A spin that does not consume a free spin ends the session instead
        of looping again.
        """
        ctx = self.context
        free_spins = ctx.free_spins
        try:
            while free_spins.is_active() and free_spins.remaining_spins > 0:
                played_before = free_spins.spins_played
                await self.spin()

                if free_spins.is_active() and free_spins.spins_played <= played_before:
                    logger.warning(
                        "Free spins stuck at %d remaining; ending the session",
                        free_spins.remaining_spins,
                    )
                    free_spins.end()
                    await ctx.renderer.show_message(FREE_SPINS_FAILED_MESSAGE)
                    break

                if free_spins.is_active():
                    await ctx.timers.sleep(ctx.config.timing.free_spin_delay, FREE_SPIN_TIMER)
        except Exception as e:
            await ctx.errors.handle(
                e,
                context="FreeSpins",
                default_code=ErrorCode.FREE_SPINS_FAILED,
                user_message=FREE_SPINS_FAILED_MESSAGE,
                fallback=self._abort_free_spins,
            )
        self.update_display()

    async def _abort_free_spins(self) -> None:
        ctx = self.context
        if ctx.free_spins.is_active():
            ctx.free_spins.end()
        if ctx.state.is_spinning:
            ctx.state.set_spinning(False)
        ctx.timers.clear_all()
        self.update_display()
        await self.persist()

    # Bonus pick game

    async def _play_bonus_game(self) -> float:
        """Wait for the active bonus game to finish. Returns its total."""
        ctx = self.context
        if ctx.bonus.picks_remaining <= 0:
            return ctx.bonus.end()
        self._bonus_done = asyncio.Event()
        handle = ctx.renderer.show_feature_overlay(
            "bonus",
            {
                "picks": ctx.bonus.picks_remaining,
                "pool": len(ctx.bonus.prizes),
                "total": ctx.bonus.total_win,
            },
        )
        if handle is None:
            # Headless: reveal the first unpicked slots
            while ctx.bonus.is_active() and ctx.bonus.picks_remaining > 0:
                unpicked = ctx.bonus.unpicked_indices()
                if not unpicked:
                    break
                self.pick_bonus(unpicked[0])
        else:
            await self._bonus_done.wait()
            ctx.renderer.hide_feature_overlay(handle)
        self._bonus_done = None
        return ctx.bonus.end()

    def pick_bonus(self, index: int) -> PickResult | None:
        """Player input: reveal one prize of the running bonus game."""
        result = self.context.bonus.pick(index)
        if result is None:
            return None
        self.context.sound.play("bonusPick", kind=result.prize.kind)
        if result.finished and self._bonus_done is not None:
            self._bonus_done.set()
        return result

    # Gamble

    async def _offer_gamble(self, amount: float) -> float:
        """Offer the double-up and wait for it to resolve. Returns the amount kept."""
        ctx = self.context
        gamble = ctx.gamble
        gamble.offer(amount)
        self._gamble_done = asyncio.Event()
        handle = ctx.renderer.show_feature_overlay(
            "gamble", {"amount": amount, "timeout": ctx.config.gamble.offer_timeout}
        )
        if handle is None:
            self._gamble_done = None
            return gamble.collect()

        if not self._gamble_done.is_set():
            self._gamble_seconds_left = int(ctx.config.gamble.offer_timeout)
            ctx.timers.set_interval(1.0, self._gamble_countdown_tick, GAMBLE_OFFER_TIMER)
        await self._gamble_done.wait()
        ctx.timers.clear_by_label(GAMBLE_OFFER_TIMER)
        ctx.renderer.hide_feature_overlay(handle)
        self._gamble_done = None
        return gamble.last_result

    def _gamble_countdown_tick(self) -> None:
        self._gamble_seconds_left -= 1
        if self._gamble_seconds_left > 0:
            return
        self.context.timers.clear_by_label(GAMBLE_OFFER_TIMER)
        if self.context.gamble.phase == GamblePhase.OFFERED:
            logger.debug("Gamble offer timed out; collecting")
            self.context.gamble.decline()
            self._resolve_gamble()

    def _resolve_gamble(self) -> None:
        if self._gamble_done is not None:
            self._gamble_done.set()

    def gamble_accept(self) -> None:
        self.context.timers.clear_by_label(GAMBLE_OFFER_TIMER)
        self.context.gamble.accept()
        self.context.telemetry.emit_feature_triggered(
            FeatureTriggeredEvent(
                "gamble", 1, self.context.gamble.amount, get_config_hash(self.context.config)
            )
        )

    def gamble_guess(self, color: str) -> GambleRound:
        round_ = self.context.gamble.guess(color)
        self.context.sound.play("gambleWin" if round_.won else "gambleLose")
        if not self.context.gamble.is_active():
            self._resolve_gamble()
        return round_

    def gamble_collect(self) -> float:
        amount = self.context.gamble.collect()
        self._resolve_gamble()
        return amount

    def gamble_decline(self) -> float:
        self.context.timers.clear_by_label(GAMBLE_OFFER_TIMER)
        amount = self.context.gamble.decline()
        self._resolve_gamble()
        return amount

    # Other entry points

    async def resume(self) -> None:
        """Continue a bonus game or free-spins session restored from a save."""
        ctx = self.context
        if ctx.state.is_spinning:
            raise GameError(ErrorCode.SPIN_IN_PROGRESS, "Cannot resume while a spin is in progress")

        if ctx.bonus.is_active():
            logger.info("Resuming bonus game (%d picks left)", ctx.bonus.picks_remaining)
            checkpoint = ctx.state.create_checkpoint()
            try:
                ctx.state.set_spinning(True)
                bonus_win = await self._play_bonus_game()
                if bonus_win > 0:
                    ctx.state.add_credits(bonus_win)
                    ctx.state.set_last_win(bonus_win)
                ctx.state.set_spinning(False)
                await self.persist()
            except Exception as e:
                await ctx.errors.handle(
                    e, context="Bonus", fallback=lambda: self._rollback(checkpoint)
                )
                return

        if ctx.free_spins.is_active() and ctx.free_spins.remaining_spins > 0:
            logger.info("Resuming free spins (%d left)", ctx.free_spins.remaining_spins)
            await self.run_free_spins()

    async def buy_bonus(self) -> float:
        """Pay bet x cost multiplier to play a bonus game. Returns the bonus win."""
        ctx = self.context
        state = ctx.state
        if (
            state.is_spinning
            or ctx.free_spins.is_active()
            or ctx.bonus.is_active()
            or ctx.gamble.is_active()
        ):
            raise GameError(ErrorCode.FEATURE_UNAVAILABLE, "Bonus cannot be bought right now")
        cost = ctx.buy_bonus.cost(state.current_bet)
        if state.credits < cost:
            raise GameError(
                ErrorCode.INSUFFICIENT_CREDITS, f"Insufficient credits: {state.credits} < {cost}"
            )

        checkpoint = state.create_checkpoint()
        try:
            state.set_spinning(True)
            state.deduct_credits(cost)
            self.update_display()
            picks = ctx.bonus.trigger(ctx.buy_bonus.roll_picks())
            logger.info("Bonus bought for %s (%d picks)", cost, picks)

            bonus_win = await self._play_bonus_game()
            if bonus_win > 0:
                state.add_credits(bonus_win)
            state.set_last_win(bonus_win)
            ctx.statistics.record_spin(cost, bonus_win, bonus_win > 0)
            ctx.statistics.record_feature_trigger("bonus")
            ctx.history.record(cost, bonus_win, ["bonus"])
            state.set_spinning(False)
            self.update_display()
            await self.persist()
        except Exception as e:
            await ctx.errors.handle(
                e,
                context="BuyBonus",
                user_message="ERROR: BONUS FAILED\nCOST REFUNDED",
                fallback=lambda: self._rollback(checkpoint),
            )
            return 0
        return bonus_win

    def toggle_cascade(self) -> bool:
        ctx = self.context
        if (
            not ctx.cascade.enabled
            and ctx.levels is not None
            and not ctx.levels.is_feature_unlocked("cascade")
        ):
            raise GameError(ErrorCode.FEATURE_UNAVAILABLE, "Cascades unlock at level 20")
        return ctx.cascade.toggle()

    def set_auto_collect(self, enabled: bool) -> None:
        self.context.auto_collect_enabled = bool(enabled)

    def claim_challenge(self, challenge_id: str) -> int:
        reward = self.context.challenges.claim(challenge_id)
        if reward:
            self.update_display()
        return reward

    # Persistence

    async def load(self) -> None:
        if self.codec is None:
            return
        await self.codec.load(self.context)
        self.update_display()

    async def persist(self) -> None:
        """Save through the codec. A failed save is reported, never raised."""
        if self.codec is None:
            return
        try:
            await self.codec.save(self.context)
        except Exception as e:
            await self.context.errors.handle(
                e, context="Save", default_code=ErrorCode.PERSISTENCE_ERROR
            )

    async def reset_all_data(self) -> None:
        """Wipe the save and return game state and features to defaults."""
        ctx = self.context
        if ctx.state.is_spinning:
            raise GameError(ErrorCode.SPIN_IN_PROGRESS, "Cannot reset during a spin")
        self.autoplay.stop("Reset")
        ctx.timers.clear_all()
        if self.codec is not None:
            await self.codec.clear()
        ctx.state.reset()
        ctx.free_spins.init(None)
        ctx.bonus.init(None)
        ctx.gamble.init(None)
        ctx.history.clear()
        self._credits_hit_zero = False
        self.update_display()
